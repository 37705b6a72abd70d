import re
from decimal import Decimal

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APIClient

from approvals.exceptions import NoApprovalPolicy, WorkflowStateError
from approvals.models import (
    ApprovalCategory, ApprovalRole, ApprovalRule, ApprovalWorkflow, RuleApprover, UserApprover, WorkflowStatus,
)
from procurement.approval_service import decide, pending_purchase_requests, submit_purchase_request
from procurement.models import RFQ, RFQAuditLog, RFQItem, RFQVendor, RFQVendorPrice, PurchaseRequest, Vendor
from procurement.services import cancel_purchase_request, select_vendor, set_recommended_vendor
from users.models import AppRole, UserRole


class RFQFixtureMixin:
    def make_rfq(self):
        """RFQ with one item and two quotations; V-001 is recommended at 7000, V-002 quotes 6500"""
        self.vendor_a = Vendor.objects.create(code='V-001', company_name_en='Alpha Trading')
        self.vendor_b = Vendor.objects.create(code='V-002', company_name_en='Beta Supplies')
        self.rfq = RFQ.objects.create(title_en='Site cabling', created_by=self.buyer, status='under_review')
        self.item = RFQItem.objects.create(
            rfq=self.rfq, item_number=1, description_en='Copper cable 4mm', quantity=Decimal('10.00'), unit='m',
        )
        self.quote_a = RFQVendor.objects.create(rfq=self.rfq, vendor=self.vendor_a, quotation_received=True)
        self.quote_b = RFQVendor.objects.create(rfq=self.rfq, vendor=self.vendor_b, quotation_received=True)
        RFQVendorPrice.objects.create(
            rfq_vendor=self.quote_a, rfq_item=self.item, unit_price=Decimal('700.00'), total_price=Decimal('7000.00'),
        )
        RFQVendorPrice.objects.create(
            rfq_vendor=self.quote_b, rfq_item=self.item, unit_price=Decimal('650.00'), total_price=Decimal('6500.00'),
        )
        set_recommended_vendor(self.rfq, self.vendor_a.id, self.buyer, 'Best technical score')
        self.rfq.refresh_from_db()


class VendorSelectionTestCase(RFQFixtureMixin, TestCase):
    def setUp(self):
        self.buyer = User.objects.create_user(username='buyer', password='testpass')
        UserRole.objects.create(user=self.buyer, role=AppRole.BUYER)
        self.make_rfq()

    def test_quotation_total_follows_price_lines(self):
        self.quote_a.refresh_from_db()
        self.assertEqual(self.quote_a.total_amount, Decimal('7000.00'))

        self.quote_a.prices.all().delete()
        self.quote_a.refresh_from_db()
        self.assertEqual(self.quote_a.total_amount, Decimal('0.00'))

    def test_recommendation_flags(self):
        self.quote_a.refresh_from_db()
        self.assertTrue(self.quote_a.is_recommended)
        set_recommended_vendor(self.rfq, self.vendor_b.id, self.buyer)
        self.quote_a.refresh_from_db()
        self.quote_b.refresh_from_db()
        self.assertFalse(self.quote_a.is_recommended)
        self.assertTrue(self.quote_b.is_recommended)

    def test_recommended_vendor_needs_no_justification(self):
        pr = select_vendor(self.rfq, self.vendor_a.id, by_user=self.buyer)

        self.assertTrue(re.match(r'^PR-\d{4}-\d{4}$', pr.code))
        self.assertEqual(pr.vendor, self.vendor_a)
        self.assertEqual(pr.total_amount, Decimal('7000.00'))
        self.assertIsNone(pr.non_recommended_justification)
        self.assertEqual(pr.status, 'draft')

        line = pr.items.get()
        self.assertEqual(line.rfq_item, self.item)
        self.assertEqual(line.unit_price, Decimal('700.00'))

        self.rfq.refresh_from_db()
        self.assertEqual(self.rfq.status, 'completed')
        self.assertEqual(self.rfq.converted_to_pr_by, self.buyer)
        self.assertTrue(RFQVendor.objects.get(pk=self.quote_a.pk).is_selected)
        self.assertFalse(RFQVendor.objects.get(pk=self.quote_b.pk).is_selected)

        audit = RFQAuditLog.objects.get(rfq=self.rfq, action='converted_to_pr')
        self.assertEqual(audit.action_details['pr_code'], pr.code)
        self.assertIsNone(audit.action_details['non_recommended_justification'])

    def test_override_without_justification_is_rejected(self):
        for justification in (None, '', '   '):
            with self.assertRaises(ValidationError) as ctx:
                select_vendor(self.rfq, self.vendor_b.id, justification=justification, by_user=self.buyer)
            self.assertIn('justification', ctx.exception.message_dict)

        self.rfq.refresh_from_db()
        self.assertEqual(self.rfq.status, 'under_review')
        self.assertFalse(PurchaseRequest.objects.exists())

    def test_override_with_justification_is_recorded(self):
        pr = select_vendor(
            self.rfq, self.vendor_b.id, justification='Alpha cannot deliver before March', by_user=self.buyer,
        )
        self.assertEqual(pr.vendor, self.vendor_b)
        self.assertEqual(pr.total_amount, Decimal('6500.00'))
        self.assertEqual(pr.non_recommended_justification, 'Alpha cannot deliver before March')
        audit = RFQAuditLog.objects.get(rfq=self.rfq, action='converted_to_pr')
        self.assertEqual(audit.action_details['selected_vendor_code'], 'V-002')

    def test_no_recommendation_means_free_choice(self):
        RFQ.objects.filter(pk=self.rfq.pk).update(recommended_vendor=None)
        RFQVendor.objects.filter(rfq=self.rfq).update(is_recommended=False)
        pr = select_vendor(self.rfq, self.vendor_b.id, by_user=self.buyer)
        self.assertIsNone(pr.non_recommended_justification)

    def test_closed_rfq_cannot_convert_again(self):
        select_vendor(self.rfq, self.vendor_a.id, by_user=self.buyer)
        with self.assertRaises(WorkflowStateError):
            select_vendor(self.rfq, self.vendor_a.id, by_user=self.buyer)
        self.assertEqual(PurchaseRequest.objects.count(), 1)

    def test_vendor_without_quotation(self):
        stranger = Vendor.objects.create(code='V-003', company_name_en='Gamma')
        with self.assertRaises(ValidationError) as ctx:
            select_vendor(self.rfq, stranger.id, by_user=self.buyer)
        self.assertIn('vendor_id', ctx.exception.message_dict)

    def test_codes_are_sequential(self):
        first = PurchaseRequest.objects.create(title_en='One')
        second = PurchaseRequest.objects.create(title_en='Two')
        self.assertTrue(first.code.endswith('-0001'))
        self.assertTrue(second.code.endswith('-0002'))
        self.assertTrue(self.rfq.code.startswith('RFQ-'))

    def test_codes_keep_counting_past_four_digits(self):
        first = PurchaseRequest.objects.create(title_en='One')
        stem = first.code.rsplit('-', 1)[0]
        PurchaseRequest.objects.create(title_en='Old', code=f'{stem}-9999')
        ten_thousand = PurchaseRequest.objects.create(title_en='Big')
        self.assertEqual(ten_thousand.code, f'{stem}-10000')

        after = PurchaseRequest.objects.create(title_en='Bigger')
        self.assertEqual(after.code, f'{stem}-10001')

    def test_convert_endpoint(self):
        client = APIClient()
        client.force_authenticate(self.buyer)
        url = f'/api/procurement/rfqs/{self.rfq.pk}/convert-to-pr/'

        res = client.post(url, {'vendor_id': self.vendor_b.id}, format='json')
        self.assertEqual(res.status_code, 400)
        self.assertIn('justification', res.data)

        res = client.post(url, {'vendor_id': self.vendor_b.id, 'justification': 'Faster delivery'}, format='json')
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.data['non_recommended_justification'], 'Faster delivery')

        res = client.post(url, {'vendor_id': self.vendor_a.id}, format='json')
        self.assertEqual(res.status_code, 409)


class PurchaseRequestApprovalTestCase(RFQFixtureMixin, TestCase):
    def setUp(self):
        """PR matrix 0–10000 with auto-approval below 5000: BUYER_LEAD then FINANCE"""
        self.buyer = User.objects.create_user(username='buyer', password='testpass', email='buyer@example.com')
        self.lead = User.objects.create_user(username='lead', password='testpass')
        self.finance = User.objects.create_user(username='finance', password='testpass')
        UserRole.objects.create(user=self.buyer, role=AppRole.BUYER)

        lead_role = ApprovalRole.objects.create(code='BUYER_LEAD', name_en='Buyer Lead', hierarchy_level=1)
        finance_role = ApprovalRole.objects.create(code='FINANCE', name_en='Finance', hierarchy_level=2)
        rule = ApprovalRule.objects.create(
            category=ApprovalCategory.PURCHASE_REQUEST, name_en='PR up to 10k',
            min_amount=Decimal('0'), max_amount=Decimal('10000'), auto_approve_below=Decimal('5000'),
        )
        RuleApprover.objects.create(rule=rule, approval_role=lead_role, sequence_order=1)
        RuleApprover.objects.create(rule=rule, approval_role=finance_role, sequence_order=2)
        UserApprover.objects.create(user=self.lead, approver_role='BUYER_LEAD')
        UserApprover.objects.create(user=self.finance, approver_role='FINANCE')

        self.make_rfq()
        self.pr = select_vendor(self.rfq, self.vendor_a.id, by_user=self.buyer)

    def test_submit_and_approve(self):
        wf = submit_purchase_request(self.pr, self.buyer)
        self.pr.refresh_from_db()
        self.assertEqual(self.pr.status, 'submitted')
        self.assertIsNotNone(self.pr.submitted_at)
        self.assertEqual(wf.reference_code, self.pr.code)
        self.assertEqual(self.pr.approvals.get(), wf)
        self.assertEqual(list(pending_purchase_requests(self.lead)), [self.pr])

        _, outcome = decide(self.pr, self.lead, approve=True)
        self.assertEqual(outcome, 'moved')
        self.assertEqual(self.pr.status, 'submitted')
        self.assertEqual(list(pending_purchase_requests(self.lead)), [])

        wf, outcome = decide(self.pr, self.finance, approve=True, comment='Budget ok')
        self.assertEqual(outcome, 'completed')
        self.assertEqual(wf.status, WorkflowStatus.APPROVED)
        self.assertEqual(self.pr.status, 'approved')
        self.assertIsNotNone(self.pr.approved_at)

    def test_reject_and_resubmit(self):
        submit_purchase_request(self.pr, self.buyer)
        self.pr.refresh_from_db()
        _, outcome = decide(self.pr, self.lead, approve=False, comment='Split the order')
        self.assertEqual(outcome, 'rejected')
        self.assertEqual(self.pr.status, 'rejected')

        submit_purchase_request(self.pr, self.buyer)
        self.pr.refresh_from_db()
        self.assertEqual(self.pr.status, 'submitted')
        self.assertEqual(self.pr.approvals.count(), 2)

    def test_double_submit(self):
        submit_purchase_request(self.pr, self.buyer)
        with self.assertRaises(WorkflowStateError):
            submit_purchase_request(self.pr, self.buyer)

    def test_small_request_is_auto_approved(self):
        pr = PurchaseRequest.objects.create(title_en='Stationery', total_amount=Decimal('3000.00'), requested_by=self.buyer)
        wf = submit_purchase_request(pr, self.buyer)
        pr.refresh_from_db()
        self.assertEqual(wf.status, WorkflowStatus.AUTO_APPROVED)
        self.assertEqual(pr.status, 'approved')
        self.assertIsNotNone(pr.approved_at)

    def test_amount_without_policy_stays_draft(self):
        pr = PurchaseRequest.objects.create(title_en='Generator', total_amount=Decimal('25000.00'))
        with self.assertRaises(NoApprovalPolicy):
            submit_purchase_request(pr, self.buyer)
        pr.refresh_from_db()
        self.assertEqual(pr.status, 'draft')
        self.assertFalse(ApprovalWorkflow.objects.filter(object_id=pr.pk, category='purchase_request').exists())

    def test_decide_requires_submitted(self):
        with self.assertRaises(WorkflowStateError):
            decide(self.pr, self.lead, approve=True)

    def test_cancel(self):
        pr = cancel_purchase_request(self.pr, self.buyer, reason='Duplicate')
        self.assertEqual(pr.status, 'cancelled')
        with self.assertRaises(WorkflowStateError):
            cancel_purchase_request(pr, self.buyer)

    def test_api_flow(self):
        client = APIClient()
        client.force_authenticate(self.buyer)
        res = client.post(f'/api/procurement/purchase-requests/{self.pr.pk}/submit/', {}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['status'], 'submitted')
        self.assertEqual(res.data['approval']['current_level'], 1)

        res = client.post(f'/api/procurement/purchase-requests/{self.pr.pk}/approve/', {}, format='json')
        self.assertEqual(res.status_code, 403)

        client.force_authenticate(self.lead)
        res = client.post(f'/api/procurement/purchase-requests/{self.pr.pk}/approve/', {}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['outcome'], 'moved')
