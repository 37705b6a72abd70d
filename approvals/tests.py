from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from django.contrib.auth.models import User
from django.core import mail
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from approvals import services
from approvals.chain import APPROVED, PENDING, REJECTED, ApprovalChain
from approvals.exceptions import NoApprovalPolicy, WorkflowStateError
from approvals.labels import label_for
from approvals.models import (
    ActionStatus, ApprovalAuditLog, ApprovalCategory, ApprovalMatrixVersion, ApprovalOverride, ApprovalRole,
    ApprovalRule, ApprovalThreshold, ApprovalWorkflow, OverrideType, RuleApprover, UserApprover, WorkflowStatus,
)
from users.models import AppRole, UserRole


def make_matrix():
    """Purchase requests 0–10000, auto-approved below 5000, BUYER_LEAD then FINANCE."""
    buyer_lead = ApprovalRole.objects.create(code='BUYER_LEAD', name_en='Buyer Lead', hierarchy_level=1)
    finance = ApprovalRole.objects.create(code='FINANCE', name_en='Finance', hierarchy_level=2)
    rule = ApprovalRule.objects.create(
        category=ApprovalCategory.PURCHASE_REQUEST,
        name_en='PR up to 10k',
        min_amount=Decimal('0.00'),
        max_amount=Decimal('10000.00'),
        auto_approve_below=Decimal('5000.00'),
    )
    RuleApprover.objects.create(rule=rule, approval_role=buyer_lead, sequence_order=1)
    RuleApprover.objects.create(rule=rule, approval_role=finance, sequence_order=2)
    return rule, buyer_lead, finance


class ApprovalChainTestCase(SimpleTestCase):
    """Sequential chain over plain step objects"""

    def _steps(self, n):
        return [
            SimpleNamespace(sequence_order=i, status=PENDING, approver_id=None, comments='', acted_at=None)
            for i in range(1, n + 1)
        ]

    def test_approve_moves_then_completes(self):
        steps = self._steps(2)
        chain = ApprovalChain(steps, 1)

        self.assertEqual(chain.approve(7, 'ok'), 'moved')
        self.assertEqual(chain.current_level, 2)
        self.assertEqual(steps[0].status, APPROVED)
        self.assertEqual(steps[0].approver_id, 7)

        self.assertEqual(chain.approve(8), 'completed')
        self.assertIsNone(chain.current_step())

    def test_reject_requires_comment(self):
        steps = self._steps(2)
        chain = ApprovalChain(steps, 1)
        with self.assertRaises(ValidationError):
            chain.reject(7, '   ')
        self.assertEqual(steps[0].status, PENDING)

        self.assertEqual(chain.reject(7, 'over budget'), 'rejected')
        self.assertEqual(steps[0].status, REJECTED)
        self.assertEqual(steps[1].status, PENDING)

    def test_only_current_step_is_actionable(self):
        steps = self._steps(3)
        chain = ApprovalChain(steps, 1)
        with self.assertRaises(WorkflowStateError):
            chain.approve(7, step=steps[2])

    def test_gaps_in_sequence_are_skipped(self):
        steps = self._steps(3)
        steps[1].sequence_order = 5
        chain = ApprovalChain(steps, 1)
        chain.approve(7)
        self.assertEqual(chain.current_level, 3)


class RuleMatchingTestCase(TestCase):
    def setUp(self):
        self.rule, self.buyer_lead, self.finance = make_matrix()

    def test_amount_below_auto_threshold_is_auto_approved(self):
        """3000 AED falls under the 5000 threshold"""
        result = services.match_rule(ApprovalCategory.PURCHASE_REQUEST, Decimal('3000'))
        self.assertEqual(result.rule, self.rule)
        self.assertTrue(result.auto_approved)
        self.assertEqual(result.approval_path, [])

    def test_amount_above_threshold_gets_full_path(self):
        result = services.match_rule(ApprovalCategory.PURCHASE_REQUEST, Decimal('7000'))
        self.assertFalse(result.auto_approved)
        self.assertEqual([a.approval_role.code for a in result.approval_path], ['BUYER_LEAD', 'FINANCE'])

    def test_threshold_itself_is_not_auto_approved(self):
        result = services.match_rule(ApprovalCategory.PURCHASE_REQUEST, Decimal('5000'))
        self.assertFalse(result.auto_approved)
        self.assertEqual(len(result.approval_path), 2)

    def test_band_bounds_are_inclusive(self):
        self.assertEqual(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '10000').rule, self.rule)
        self.assertEqual(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, 0).rule, self.rule)
        self.assertIsNone(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '10000.01').rule)

    def test_no_match_for_other_category_or_inactive_rule(self):
        self.assertIsNone(services.match_rule(ApprovalCategory.CAPEX, '7000').rule)
        ApprovalRule.objects.filter(pk=self.rule.pk).update(is_active=False)
        self.assertIsNone(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '7000').rule)

    def test_overlapping_legacy_rules_prefer_higher_minimum(self):
        """Rows written before overlap validation existed"""
        narrow = ApprovalRule.objects.create(
            category=ApprovalCategory.PURCHASE_REQUEST, name_en='Legacy narrow',
            min_amount=Decimal('6000'), max_amount=Decimal('8000'),
        )
        result = services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '7000')
        self.assertEqual(result.rule, narrow)

    def test_unbounded_rule(self):
        top = ApprovalRule.objects.create(
            category=ApprovalCategory.PURCHASE_REQUEST, name_en='Above 10k', min_amount=Decimal('10000.01'),
        )
        self.assertEqual(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '9999999').rule, top)

    def test_simulate_payload(self):
        data = services.simulate(ApprovalCategory.PURCHASE_REQUEST, '7000')
        self.assertEqual(data['rule']['id'], self.rule.id)
        self.assertFalse(data['auto_approved'])
        self.assertEqual([s['role_code'] for s in data['approval_path']], ['BUYER_LEAD', 'FINANCE'])

        empty = services.simulate(ApprovalCategory.CONTRACTS, '7000')
        self.assertIsNone(empty['rule'])
        self.assertEqual(empty['approval_path'], [])

    def _projects_rule(self):
        """Projects department gets its own 0–20000 band with a single approver"""
        rule = ApprovalRule.objects.create(
            category=ApprovalCategory.PURCHASE_REQUEST, name_en='Projects PR',
            department='Projects', min_amount=Decimal('0'), max_amount=Decimal('20000'),
        )
        RuleApprover.objects.create(rule=rule, approval_role=self.finance, sequence_order=1)
        return rule

    def test_department_rule_is_preferred(self):
        projects = self._projects_rule()
        result = services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '7000', department='Projects')
        self.assertEqual(result.rule, projects)
        self.assertEqual([a.approval_role.code for a in result.approval_path], ['FINANCE'])

        # only the department band reaches 15000
        self.assertEqual(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '15000', 'Projects').rule, projects)

    def test_department_falls_back_to_global_rule(self):
        self._projects_rule()
        self.assertEqual(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '7000', 'Warehouse').rule, self.rule)
        self.assertIsNone(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '15000', 'Warehouse').rule)

    def test_department_rules_ignored_without_department(self):
        self._projects_rule()
        self.assertEqual(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '7000').rule, self.rule)
        self.assertEqual(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '7000', '  ').rule, self.rule)
        self.assertIsNone(services.match_rule(ApprovalCategory.PURCHASE_REQUEST, '15000').rule)

    def test_simulate_with_department(self):
        projects = self._projects_rule()
        data = services.simulate(ApprovalCategory.PURCHASE_REQUEST, '7000', 'Projects')
        self.assertEqual(data['department'], 'Projects')
        self.assertEqual(data['rule']['id'], projects.id)
        self.assertEqual(data['rule']['department'], 'Projects')


class MatrixMaintenanceTestCase(TestCase):
    def setUp(self):
        """Admin plus one existing 0–10000 purchase request band"""
        self.admin = User.objects.create_user(username='matrix_admin', password='testpass', is_superuser=True)
        self.rule = services.add_rule({
            'category': ApprovalCategory.PURCHASE_REQUEST,
            'name_en': 'PR up to 10k',
            'min_amount': Decimal('0'),
            'max_amount': Decimal('10000'),
        }, by_user=self.admin)

    def test_add_rule_writes_audit_and_snapshot(self):
        audit = ApprovalAuditLog.objects.get(action='AddRule')
        self.assertEqual(audit.entity_id, str(self.rule.pk))
        self.assertEqual(audit.performed_by, self.admin)

        version = ApprovalMatrixVersion.objects.get()
        self.assertEqual(version.version_number, 1)
        self.assertEqual(version.change_summary, 'Added rule: PR up to 10k')
        self.assertEqual(len(version.snapshot['rules']), 1)

    def test_overlapping_band_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            services.add_rule({
                'category': ApprovalCategory.PURCHASE_REQUEST,
                'name_en': 'Overlap',
                'min_amount': Decimal('5000'),
                'max_amount': Decimal('20000'),
            }, by_user=self.admin)
        self.assertIn('min_amount', ctx.exception.message_dict)
        self.assertEqual(ApprovalRule.objects.count(), 1)

    def test_adjacent_band_and_other_category_are_allowed(self):
        services.add_rule({
            'category': ApprovalCategory.PURCHASE_REQUEST,
            'name_en': 'PR 10k to 50k',
            'min_amount': Decimal('10000'),
            'max_amount': Decimal('50000'),
        })
        services.add_rule({
            'category': ApprovalCategory.CAPEX,
            'name_en': 'CAPEX any',
            'min_amount': Decimal('0'),
        })
        self.assertEqual(ApprovalRule.objects.count(), 3)

    def test_unbounded_band_overlaps_everything_above(self):
        services.add_rule({
            'category': ApprovalCategory.PURCHASE_REQUEST,
            'name_en': 'Above 50k',
            'min_amount': Decimal('50000'),
        })
        with self.assertRaises(ValidationError):
            services.add_rule({
                'category': ApprovalCategory.PURCHASE_REQUEST,
                'name_en': 'Inside',
                'min_amount': Decimal('60000'),
                'max_amount': Decimal('70000'),
            })

    def test_inactive_rules_do_not_block(self):
        services.add_rule({
            'category': ApprovalCategory.PURCHASE_REQUEST,
            'name_en': 'Draft overlap',
            'min_amount': Decimal('5000'),
            'max_amount': Decimal('8000'),
            'is_active': False,
        })
        self.assertEqual(ApprovalRule.objects.count(), 2)

    def test_overlap_is_checked_per_department(self):
        services.add_rule({
            'category': ApprovalCategory.PURCHASE_REQUEST,
            'name_en': 'Projects PR',
            'department': 'Projects',
            'min_amount': Decimal('0'),
            'max_amount': Decimal('20000'),
        })
        with self.assertRaises(ValidationError) as ctx:
            services.add_rule({
                'category': ApprovalCategory.PURCHASE_REQUEST,
                'name_en': 'Projects PR again',
                'department': 'Projects',
                'min_amount': Decimal('5000'),
                'max_amount': Decimal('8000'),
            })
        self.assertIn('department Projects', ctx.exception.message_dict['min_amount'][0])

        services.add_rule({
            'category': ApprovalCategory.PURCHASE_REQUEST,
            'name_en': 'Warehouse PR',
            'department': 'Warehouse',
            'min_amount': Decimal('5000'),
            'max_amount': Decimal('8000'),
        })
        self.assertEqual(ApprovalRule.objects.count(), 3)

    def test_blank_department_means_every_department(self):
        with self.assertRaises(ValidationError):
            services.add_rule({
                'category': ApprovalCategory.PURCHASE_REQUEST,
                'name_en': 'Blank dept overlap',
                'department': '',
                'min_amount': Decimal('5000'),
                'max_amount': Decimal('8000'),
            })

    def test_max_must_exceed_min(self):
        with self.assertRaises(ValidationError) as ctx:
            services.add_rule({
                'category': ApprovalCategory.PAYMENTS,
                'name_en': 'Broken band',
                'min_amount': Decimal('100'),
                'max_amount': Decimal('100'),
            })
        self.assertIn('max_amount', ctx.exception.message_dict)

    def test_edit_rule_bumps_version(self):
        rule = services.edit_rule(self.rule, {'name_en': 'PR small', 'version': 99}, by_user=self.admin)
        self.assertEqual(rule.version, 2)
        self.assertEqual(rule.name_en, 'PR small')

        audit = ApprovalAuditLog.objects.get(action='EditRule')
        self.assertEqual(audit.old_values['name_en'], 'PR up to 10k')
        self.assertEqual(audit.new_values['name_en'], 'PR small')
        latest = ApprovalMatrixVersion.objects.order_by('-version_number').first()
        self.assertEqual(latest.version_number, 2)
        self.assertEqual(latest.change_summary, 'Updated rule: PR small')

    def test_delete_rule_cascades_approvers(self):
        role = services.add_role({'code': 'FINANCE', 'name_en': 'Finance', 'hierarchy_level': 2})
        services.add_rule_approver(self.rule, role)
        services.delete_rule(self.rule, by_user=self.admin)

        self.assertFalse(RuleApprover.objects.exists())
        self.assertTrue(ApprovalAuditLog.objects.filter(action='DeleteRule').exists())
        self.assertEqual(
            ApprovalMatrixVersion.objects.order_by('-version_number').first().change_summary,
            'Deleted rule: PR up to 10k',
        )

    def test_rule_approver_sequence_defaults_to_next(self):
        lead = services.add_role({'code': 'BUYER_LEAD', 'name_en': 'Buyer Lead', 'hierarchy_level': 1})
        finance = services.add_role({'code': 'FINANCE', 'name_en': 'Finance', 'hierarchy_level': 2})
        first = services.add_rule_approver(self.rule, lead)
        second = services.add_rule_approver(self.rule, finance)
        self.assertEqual((first.sequence_order, second.sequence_order), (1, 2))

        with self.assertRaises(ValidationError):
            services.add_rule_approver(self.rule, finance, sequence_order=2)

    def test_role_code_and_hierarchy_validation(self):
        with self.assertRaises(ValidationError):
            services.add_role({'code': 'buyer', 'name_en': 'Buyer'})
        with self.assertRaises(ValidationError):
            services.add_role({'code': 'CFO', 'name_en': 'CFO', 'hierarchy_level': 11})

        role = services.add_role({'code': 'CFO', 'name_en': 'CFO', 'hierarchy_level': 10}, by_user=self.admin)
        self.assertTrue(ApprovalAuditLog.objects.filter(action='AddRole', entity_id=str(role.pk)).exists())

    def test_export_matrix(self):
        data = services.export_matrix()
        self.assertEqual(data['version'], '1.0')
        self.assertIn('exportedAt', data)
        self.assertEqual(data['rules'][0]['name_en'], 'PR up to 10k')
        self.assertEqual(data['overrides'], [])


class OverrideAndThresholdTestCase(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username='matrix_admin', password='testpass', is_superuser=True)

    def _emergency(self, **extra):
        data = {
            'override_type': OverrideType.EMERGENCY_PURCHASE,
            'name_en': 'Emergency purchase',
            'category': ApprovalCategory.PURCHASE_REQUEST,
            'bypass_levels': [2],
            'max_amount': Decimal('25000'),
        }
        data.update(extra)
        return services.add_override(data, by_user=self.admin)

    def test_add_override_is_audited_and_snapshotted(self):
        override = self._emergency()
        self.assertEqual(override.created_by, self.admin)
        self.assertTrue(override.require_justification)

        audit = ApprovalAuditLog.objects.get(action='AddOverride')
        self.assertEqual(audit.entity_type, 'approval_overrides')
        self.assertEqual(audit.new_values['bypass_levels'], [2])

        version = ApprovalMatrixVersion.objects.get()
        self.assertEqual(version.change_summary, 'Added override: Emergency purchase')
        self.assertEqual([o['id'] for o in version.snapshot['overrides']], [override.pk])
        self.assertEqual(services.export_matrix()['overrides'][0]['override_type'], 'emergency_purchase')

    def test_edit_override(self):
        override = self._emergency()
        override = services.edit_override(override, {'bypass_levels': [2, 3], 'created_by': None}, by_user=self.admin)
        self.assertEqual(override.bypass_levels, [2, 3])
        self.assertEqual(override.created_by, self.admin)

        audit = ApprovalAuditLog.objects.get(action='EditOverride')
        self.assertEqual(audit.old_values['bypass_levels'], [2])
        self.assertEqual(audit.new_values['bypass_levels'], [2, 3])
        self.assertEqual(ApprovalMatrixVersion.objects.count(), 2)

    def test_override_validation(self):
        with self.assertRaises(ValidationError) as ctx:
            self._emergency(bypass_levels=[0, 'two'])
        self.assertIn('bypass_levels', ctx.exception.message_dict)

        now = timezone.now()
        with self.assertRaises(ValidationError) as ctx:
            self._emergency(valid_from=now, valid_until=now - timedelta(days=1))
        self.assertIn('valid_until', ctx.exception.message_dict)
        self.assertFalse(ApprovalOverride.objects.exists())

    def test_overrides_in_effect(self):
        now = timezone.now()
        current = self._emergency()
        everywhere = self._emergency(name_en='Budget override', override_type=OverrideType.BUDGET_OVERRIDE, category=None)
        self._emergency(name_en='Expired', valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1))
        self._emergency(name_en='Switched off', is_active=False)
        self._emergency(name_en='CAPEX only', category=ApprovalCategory.CAPEX)

        in_effect = services.overrides_in_effect(ApprovalCategory.PURCHASE_REQUEST)
        self.assertEqual({o.pk for o in in_effect}, {current.pk, everywhere.pk})

    def test_threshold_crud_is_audited(self):
        threshold = services.add_threshold({
            'module': ApprovalCategory.PURCHASE_REQUEST,
            'min_amount': Decimal('0'),
            'max_amount': Decimal('5000'),
            'approver_role': 'BUYER_LEAD',
            'approver_role_ar': 'قائد المشتريات',
            'sequence_order': 1,
        }, by_user=self.admin)
        threshold = services.edit_threshold(threshold, {'max_amount': Decimal('7500')}, by_user=self.admin)
        self.assertEqual(threshold.max_amount, Decimal('7500'))

        with self.assertRaises(ValidationError):
            services.edit_threshold(threshold, {'max_amount': Decimal('0')})

        services.delete_threshold(threshold, by_user=self.admin)
        self.assertFalse(ApprovalThreshold.objects.exists())
        self.assertEqual(
            list(ApprovalAuditLog.objects.filter(entity_type='approval_thresholds').order_by('id').values_list('action', flat=True)),
            ['AddThreshold', 'EditThreshold', 'DeleteThreshold'],
        )


class WorkflowTestCase(TestCase):
    def setUp(self):
        """Matrix, a requester used as the subject and one approver per role"""
        self.rule, self.buyer_lead, self.finance = make_matrix()
        self.requester = User.objects.create_user(username='requester', password='testpass', email='req@example.com')
        self.lead_user = User.objects.create_user(username='lead', password='testpass', email='lead@example.com')
        self.finance_user = User.objects.create_user(username='finance', password='testpass', email='fin@example.com')
        UserApprover.objects.create(
            user=self.lead_user, approver_role='BUYER_LEAD',
            modules=[ApprovalCategory.PURCHASE_REQUEST], max_approval_amount=Decimal('10000'),
        )
        UserApprover.objects.create(user=self.finance_user, approver_role='FINANCE')

    def _start(self, amount='7000'):
        return services.initiate_workflow(
            self.requester, ApprovalCategory.PURCHASE_REQUEST, Decimal(amount),
            reference_code='PR-TEST-0001', by_user=self.requester,
        )

    def test_instantiation_creates_pending_actions(self):
        wf = self._start()
        self.assertEqual(wf.status, WorkflowStatus.PENDING)
        self.assertEqual(wf.current_level, 1)
        self.assertEqual(wf.subject, self.requester)
        actions = list(wf.actions.order_by('sequence_order'))
        self.assertEqual([a.approval_role.code for a in actions], ['BUYER_LEAD', 'FINANCE'])
        self.assertTrue(all(a.status == ActionStatus.PENDING for a in actions))
        self.assertEqual(wf.snapshot['rule']['id'], self.rule.id)
        self.assertTrue(ApprovalAuditLog.objects.filter(action='workflow_initiated').exists())

    def test_auto_approved_workflow_is_complete(self):
        wf = self._start('3000')
        self.assertEqual(wf.status, WorkflowStatus.AUTO_APPROVED)
        self.assertIsNotNone(wf.completed_at)
        self.assertFalse(wf.actions.exists())
        self.assertTrue(wf.is_terminal)

    def test_rule_without_approvers_is_auto_approved(self):
        RuleApprover.objects.filter(rule=self.rule).delete()
        wf = self._start('7000')
        self.assertEqual(wf.status, WorkflowStatus.AUTO_APPROVED)

    def test_no_policy(self):
        with self.assertRaises(NoApprovalPolicy):
            self._start('20000')
        self.assertFalse(ApprovalWorkflow.objects.exists())

    def test_unknown_category(self):
        with self.assertRaises(ValidationError):
            services.initiate_workflow(self.requester, 'travel', Decimal('100'))

    def test_sequential_approval(self):
        wf = self._start()

        wf, action, outcome = services.approve_step(wf, self.lead_user, 'fine')
        self.assertEqual(outcome, 'moved')
        self.assertEqual(wf.current_level, 2)
        self.assertEqual(wf.status, WorkflowStatus.PENDING)
        action.refresh_from_db()
        self.assertEqual(action.status, ActionStatus.APPROVED)
        self.assertEqual(action.approver, self.lead_user)

        wf, _, outcome = services.approve_step(wf, self.finance_user)
        self.assertEqual(outcome, 'completed')
        wf.refresh_from_db()
        self.assertEqual(wf.status, WorkflowStatus.APPROVED)
        self.assertIsNotNone(wf.completed_at)
        self.assertEqual(
            list(ApprovalAuditLog.objects.filter(action__startswith='workflow_').order_by('id').values_list('action', flat=True)),
            ['workflow_initiated', 'workflow_step_approved', 'workflow_approved'],
        )

    def test_reject_requires_comment_and_keeps_state(self):
        wf = self._start()
        with self.assertRaises(ValidationError):
            services.reject_step(wf, self.lead_user, '')
        wf.refresh_from_db()
        self.assertEqual(wf.status, WorkflowStatus.PENDING)

        wf, _, outcome = services.reject_step(wf, self.lead_user, 'Vendor not approved')
        self.assertEqual(outcome, 'rejected')
        wf.refresh_from_db()
        self.assertEqual(wf.status, WorkflowStatus.REJECTED)
        later = wf.actions.get(sequence_order=2)
        self.assertEqual(later.status, ActionStatus.PENDING)

    def test_reject_at_middle_step_finishes_workflow(self):
        cfo = ApprovalRole.objects.create(code='CFO', name_en='CFO', hierarchy_level=3)
        RuleApprover.objects.create(rule=self.rule, approval_role=cfo, sequence_order=3)
        cfo_user = User.objects.create_user(username='cfo', password='testpass')
        UserApprover.objects.create(user=cfo_user, approver_role='CFO')
        wf = self._start()
        self.assertEqual(wf.actions.count(), 3)

        services.approve_step(wf, self.lead_user, 'ok')
        wf, action, outcome = services.reject_step(wf, self.finance_user, 'Quote is stale')
        self.assertEqual(outcome, 'rejected')
        self.assertEqual(action.sequence_order, 2)

        wf.refresh_from_db()
        self.assertEqual(wf.status, WorkflowStatus.REJECTED)
        self.assertIsNotNone(wf.completed_at)
        self.assertEqual(wf.current_level, 2)

        steps = {a.sequence_order: a for a in wf.actions.all()}
        self.assertEqual(steps[1].status, ActionStatus.APPROVED)
        self.assertEqual(steps[2].status, ActionStatus.REJECTED)
        self.assertEqual(steps[2].comments, 'Quote is stale')
        self.assertEqual(steps[2].approver, self.finance_user)
        self.assertEqual(steps[3].status, ActionStatus.PENDING)
        self.assertIsNone(steps[3].acted_at)

        with self.assertRaises(WorkflowStateError):
            services.approve_step(wf, cfo_user)
        self.assertEqual(services.pending_for_user(cfo_user), [])

    def test_terminal_workflow_cannot_be_acted_on(self):
        wf = self._start()
        services.reject_step(wf, self.lead_user, 'no')
        with self.assertRaises(WorkflowStateError):
            services.approve_step(wf, self.lead_user)

    def test_acting_out_of_order(self):
        wf = self._start()
        step_two = wf.actions.get(sequence_order=2)
        with self.assertRaises(WorkflowStateError):
            services.approve_step(wf, self.finance_user, action_id=step_two.id)

    def test_wrong_role_cannot_act(self):
        wf = self._start()
        with self.assertRaises(PermissionError):
            services.approve_step(wf, self.finance_user)
        allowed, _ = services.can_user_act(self.finance_user, wf)
        self.assertFalse(allowed)

    def test_capability_limits(self):
        wf = self._start()
        capability = UserApprover.objects.get(user=self.lead_user)

        capability.max_approval_amount = Decimal('5000')
        capability.save()
        self.assertFalse(services.can_user_act(self.lead_user, wf)[0])

        capability.max_approval_amount = None
        capability.modules = [ApprovalCategory.CAPEX]
        capability.save()
        self.assertFalse(services.can_user_act(self.lead_user, wf)[0])

        capability.modules = []
        capability.save()
        self.assertTrue(services.can_user_act(self.lead_user, wf)[0])

        capability.is_active = False
        capability.save()
        self.assertFalse(services.can_user_act(self.lead_user, wf)[0])

    def test_manager_app_role_may_act_on_any_step(self):
        manager = User.objects.create_user(username='manager', password='testpass')
        UserRole.objects.create(user=manager, role=AppRole.MANAGER)
        wf = self._start()
        self.assertTrue(services.can_user_act(manager, wf)[0])
        _, _, outcome = services.approve_step(wf, manager)
        self.assertEqual(outcome, 'moved')

    def test_pending_inbox(self):
        wf = self._start()
        self.assertEqual(services.pending_for_user(self.lead_user), [wf])
        self.assertEqual(services.pending_for_user(self.finance_user), [])

        services.approve_step(wf, self.lead_user)
        self.assertEqual(services.pending_for_user(self.lead_user), [])
        self.assertEqual([w.pk for w in services.pending_for_user(self.finance_user)], [wf.pk])
        self.assertEqual(services.pending_for_user(self.finance_user, category=ApprovalCategory.CAPEX), [])

    def test_pending_inbox_query_count_does_not_grow(self):
        for _ in range(3):
            self._start()
        # app roles, capabilities, workflows, prefetched actions
        with self.assertNumQueries(4):
            inbox = services.pending_for_user(self.lead_user)
        self.assertEqual(len(inbox), 3)

    def test_pending_inbox_requires_authentication(self):
        self._start()
        self.assertEqual(services.pending_for_user(None), [])

    def test_get_workflow_returns_latest(self):
        first = self._start()
        services.reject_step(first, self.lead_user, 'redo')
        second = self._start()
        self.assertEqual(services.get_workflow(self.requester), second)

    def test_emails_follow_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            wf = self._start()
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['lead@example.com'])

        with self.captureOnCommitCallbacks(execute=True):
            services.approve_step(wf, self.lead_user)
        self.assertEqual(mail.outbox[-1].to, ['fin@example.com'])

        with self.captureOnCommitCallbacks(execute=True):
            services.approve_step(wf, self.finance_user)
        self.assertEqual(mail.outbox[-1].to, ['req@example.com'])
        self.assertIn('Approved', mail.outbox[-1].subject)


class LabelTestCase(SimpleTestCase):
    def test_labels(self):
        self.assertEqual(label_for(ApprovalCategory, 'capex', 'ar'), 'رأسمالي')
        self.assertEqual(label_for(WorkflowStatus, 'auto_approved'), 'Auto Approved')
        self.assertEqual(label_for(ApprovalCategory, 'capex', 'fr'), 'CAPEX')
        self.assertEqual(label_for(ApprovalCategory, 'unknown'), 'unknown')


class ApprovalApiTestCase(TestCase):
    def setUp(self):
        self.rule, self.buyer_lead, self.finance = make_matrix()
        self.admin = User.objects.create_user(username='admin', password='testpass', is_superuser=True)
        self.user = User.objects.create_user(username='plain', password='testpass')
        self.client = APIClient()

    def test_simulate(self):
        self.client.force_authenticate(self.user)
        res = self.client.post('/api/approvals/simulate/', {'category': 'purchase_request', 'amount': '3000'}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.data['auto_approved'])

    def test_rule_writes_are_admin_only(self):
        payload = {
            'category': 'capex', 'name_en': 'CAPEX all', 'min_amount': '0', 'currency': 'AED',
        }
        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.post('/api/approvals/rules/', payload, format='json').status_code, 403)

        self.client.force_authenticate(self.admin)
        res = self.client.post('/api/approvals/rules/', payload, format='json')
        self.assertEqual(res.status_code, 201)
        self.assertTrue(ApprovalMatrixVersion.objects.exists())

    def test_overlapping_rule_is_400(self):
        self.client.force_authenticate(self.admin)
        res = self.client.post('/api/approvals/rules/', {
            'category': 'purchase_request', 'name_en': 'Overlap', 'min_amount': '500', 'max_amount': '800',
        }, format='json')
        self.assertEqual(res.status_code, 400)
        self.assertIn('min_amount', res.data)

    def test_decision_endpoints(self):
        wf = services.initiate_workflow(self.user, ApprovalCategory.PURCHASE_REQUEST, Decimal('7000'))
        url = f'/api/approvals/workflows/{wf.pk}/'

        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.post(url + 'approve/', {}, format='json').status_code, 403)

        self.client.force_authenticate(self.admin)
        self.assertEqual(self.client.post(url + 'reject/', {'comments': ''}, format='json').status_code, 400)

        res = self.client.post(url + 'reject/', {'comments': 'Budget frozen'}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['outcome'], 'rejected')
        self.assertEqual(res.data['workflow']['status'], 'rejected')

        self.assertEqual(self.client.post(url + 'approve/', {}, format='json').status_code, 409)

    def test_simulate_with_department(self):
        ApprovalRule.objects.create(
            category=ApprovalCategory.PURCHASE_REQUEST, name_en='Projects PR',
            department='Projects', min_amount=Decimal('0'), max_amount=Decimal('20000'),
        )
        self.client.force_authenticate(self.user)
        res = self.client.post('/api/approvals/simulate/', {
            'category': 'purchase_request', 'amount': '15000', 'department': 'Projects',
        }, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['rule']['name_en'], 'Projects PR')

    def test_override_endpoints(self):
        payload = {
            'override_type': 'single_source_justification', 'name_en': 'Single source',
            'category': 'purchase_request', 'bypass_levels': [1],
        }
        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.post('/api/approvals/overrides/', payload, format='json').status_code, 403)

        self.client.force_authenticate(self.admin)
        res = self.client.post('/api/approvals/overrides/', payload, format='json')
        self.assertEqual(res.status_code, 201)
        self.assertTrue(res.data['in_effect'])
        self.assertTrue(ApprovalAuditLog.objects.filter(action='AddOverride').exists())

        res = self.client.get('/api/approvals/overrides/in-effect/?category=purchase_request&lang=ar')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data[0]['override_type_label'], 'مبرر المورد الوحيد')

        bad = dict(payload, bypass_levels='all')
        self.assertEqual(self.client.post('/api/approvals/overrides/', bad, format='json').status_code, 400)

    def test_threshold_endpoints(self):
        self.client.force_authenticate(self.admin)
        payload = {
            'module': 'purchase_request', 'min_amount': '0', 'max_amount': '5000',
            'approver_role': 'BUYER_LEAD', 'sequence_order': 1,
        }
        res = self.client.post('/api/approvals/thresholds/', payload, format='json')
        self.assertEqual(res.status_code, 201)

        unknown = dict(payload, approver_role='NOBODY')
        self.assertEqual(self.client.post('/api/approvals/thresholds/', unknown, format='json').status_code, 400)

        res = self.client.get('/api/approvals/thresholds/?module=purchase_request')
        self.assertEqual(res.status_code, 200)

        url = f"/api/approvals/thresholds/{ApprovalThreshold.objects.get().pk}/"
        self.assertEqual(self.client.delete(url).status_code, 204)
        self.assertTrue(ApprovalAuditLog.objects.filter(action='DeleteThreshold').exists())
