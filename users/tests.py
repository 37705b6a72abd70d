from io import StringIO

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from approvals.exceptions import WorkflowStateError
from users import services
from users.models import AppRole, RoleRequest, RoleRequestStatus, UserProfile, UserRole


class RoleRequestTestCase(TestCase):
    """Two-stage role requests: line manager, then admin"""

    def setUp(self):
        """Requester reporting to a line manager, plus an admin and a bystander"""
        self.manager = User.objects.create_user(username='line_manager', password='testpass')
        self.requester = User.objects.create_user(username='requester', password='testpass')
        self.admin = User.objects.create_user(username='admin_user', password='testpass')
        self.other = User.objects.create_user(username='other', password='testpass')
        UserRole.objects.create(user=self.admin, role=AppRole.ADMIN)
        UserProfile.objects.create(user=self.requester, full_name='Requester', line_manager=self.manager)

    def _request(self, role=AppRole.BUYER):
        return services.create_role_request(self.requester, role, 'Need to raise purchase requests')

    def test_create_captures_line_manager(self):
        rr = self._request()
        self.assertEqual(rr.status, RoleRequestStatus.PENDING)
        self.assertEqual(rr.line_manager, self.manager)

    def test_create_validation(self):
        with self.assertRaises(ValidationError):
            services.create_role_request(self.requester, AppRole.BUYER, '  ')
        with self.assertRaises(ValidationError):
            services.create_role_request(self.requester, 'superhero', 'please')

        self._request()
        with self.assertRaises(ValidationError):
            self._request()

    def test_full_two_stage_approval(self):
        rr = self._request()

        rr = services.approve_by_line_manager(rr, self.manager, 'Agreed')
        self.assertEqual(rr.status, RoleRequestStatus.PENDING)
        self.assertEqual(rr.line_manager_approved_by, self.manager)
        self.assertIsNotNone(rr.line_manager_approved_at)
        self.assertFalse(UserRole.objects.filter(user=self.requester).exists())

        rr = services.approve_by_admin(rr, self.admin, 'Granted')
        rr.refresh_from_db()
        self.assertEqual(rr.status, RoleRequestStatus.APPROVED)
        self.assertEqual(rr.admin_approved_by, self.admin)
        self.assertTrue(UserRole.objects.filter(user=self.requester, role=AppRole.BUYER).exists())

    def test_line_manager_stage_is_single_use(self):
        rr = self._request()
        services.approve_by_line_manager(rr, self.manager)
        with self.assertRaises(WorkflowStateError):
            services.approve_by_line_manager(rr, self.manager)

    def test_only_line_manager_or_admin_may_sign_stage_one(self):
        rr = self._request()
        with self.assertRaises(PermissionError):
            services.approve_by_line_manager(rr, self.other)

    def test_only_admin_may_grant(self):
        rr = self._request()
        services.approve_by_line_manager(rr, self.manager)
        with self.assertRaises(PermissionError):
            services.approve_by_admin(rr, self.manager)

    def test_admin_may_skip_line_manager_by_default(self):
        rr = self._request()
        rr = services.approve_by_admin(rr, self.admin)
        self.assertEqual(rr.status, RoleRequestStatus.APPROVED)
        self.assertIsNone(rr.line_manager_approved_at)

    @override_settings(ROLE_REQUEST_REQUIRE_LINE_MANAGER=True)
    def test_admin_waits_for_line_manager_when_required(self):
        rr = self._request()
        with self.assertRaises(WorkflowStateError):
            services.approve_by_admin(rr, self.admin)

        services.approve_by_line_manager(rr, self.manager)
        rr = services.approve_by_admin(rr, self.admin)
        self.assertEqual(rr.status, RoleRequestStatus.APPROVED)

    def test_grant_is_idempotent(self):
        UserRole.objects.create(user=self.requester, role=AppRole.BUYER)
        rr = self._request()
        services.approve_by_admin(rr, self.admin)
        self.assertEqual(UserRole.objects.filter(user=self.requester, role=AppRole.BUYER).count(), 1)

    def test_rejection(self):
        rr = self._request()
        with self.assertRaises(ValidationError):
            services.reject_role_request(rr, self.admin, '')
        with self.assertRaises(PermissionError):
            services.reject_role_request(rr, self.other, 'no')

        rr = services.reject_role_request(rr, self.admin, 'Not in your job description')
        rr.refresh_from_db()
        self.assertEqual(rr.status, RoleRequestStatus.REJECTED)
        self.assertEqual(rr.admin_approved_by, self.admin)
        self.assertEqual(rr.admin_comments, 'Not in your job description')
        self.assertEqual(rr.line_manager_comments, '')

        with self.assertRaises(WorkflowStateError):
            services.approve_by_admin(rr, self.admin)

    def test_line_manager_cannot_reject(self):
        rr = self._request()
        with self.assertRaises(PermissionError):
            services.reject_role_request(rr, self.manager, 'no')
        rr.refresh_from_db()
        self.assertEqual(rr.status, RoleRequestStatus.PENDING)
        self.assertIsNone(rr.admin_approved_at)

    def test_line_manager_stage_leaves_status_pending(self):
        rr = self._request()
        services.approve_by_line_manager(rr, self.manager, 'Fine by me')
        rr.refresh_from_db()
        self.assertEqual(rr.status, RoleRequestStatus.PENDING)
        self.assertEqual(rr.line_manager_comments, 'Fine by me')
        self.assertIsNone(rr.admin_approved_at)

        # the admin can still reject after stage 1 signed off
        rr = services.reject_role_request(rr, self.admin, 'Budget freeze')
        self.assertEqual(rr.status, RoleRequestStatus.REJECTED)
        self.assertIsNotNone(rr.line_manager_approved_at)

    def test_admin_rejection_after_line_manager(self):
        rr = self._request()
        services.approve_by_line_manager(rr, self.manager)
        rr = services.reject_role_request(rr, self.admin, 'Role is being retired')
        self.assertEqual(rr.status, RoleRequestStatus.REJECTED)
        self.assertEqual(rr.admin_comments, 'Role is being retired')
        self.assertFalse(UserRole.objects.filter(user=self.requester).exists())

    def test_visibility(self):
        rr = self._request()
        self.assertIn(rr, services.visible_role_requests(self.manager))
        self.assertIn(rr, services.visible_role_requests(self.admin))
        self.assertNotIn(rr, services.visible_role_requests(self.other))


class RoleRequestApiTestCase(TestCase):
    def setUp(self):
        self.manager = User.objects.create_user(username='line_manager', password='testpass')
        self.requester = User.objects.create_user(username='requester', password='testpass')
        self.admin = User.objects.create_user(username='admin_user', password='testpass', is_superuser=True)
        UserProfile.objects.create(user=self.requester, line_manager=self.manager)
        self.client = APIClient()

    def test_request_and_approve(self):
        self.client.force_authenticate(self.requester)
        res = self.client.post('/api/users/role-requests/', {
            'requested_role': 'buyer', 'justification': 'Raising PRs for site works',
        }, format='json')
        self.assertEqual(res.status_code, 201)
        rr_id = res.data['id']

        res = self.client.post(f'/api/users/role-requests/{rr_id}/admin-approve/', {}, format='json')
        self.assertEqual(res.status_code, 403)

        self.client.force_authenticate(self.manager)
        res = self.client.post(f'/api/users/role-requests/{rr_id}/manager-approve/', {'comments': 'ok'}, format='json')
        self.assertEqual(res.status_code, 200)

        self.client.force_authenticate(self.admin)
        res = self.client.post(f'/api/users/role-requests/{rr_id}/admin-approve/', {}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['status'], 'approved')
        self.assertEqual(RoleRequest.objects.get(pk=rr_id).status, RoleRequestStatus.APPROVED)

    def test_reject_without_comment_is_400(self):
        rr = services.create_role_request(self.requester, AppRole.VIEWER, 'Read reports')
        self.client.force_authenticate(self.manager)
        res = self.client.post(f'/api/users/role-requests/{rr.pk}/reject/', {'comments': ''}, format='json')
        self.assertEqual(res.status_code, 400)

    def test_line_manager_reject_is_403(self):
        rr = services.create_role_request(self.requester, AppRole.VIEWER, 'Read reports')
        self.client.force_authenticate(self.manager)
        res = self.client.post(f'/api/users/role-requests/{rr.pk}/reject/', {'comments': 'no'}, format='json')
        self.assertEqual(res.status_code, 403)
        self.assertEqual(RoleRequest.objects.get(pk=rr.pk).status, RoleRequestStatus.PENDING)

    def test_me_lists_app_roles(self):
        UserRole.objects.create(user=self.requester, role=AppRole.BUYER)
        self.client.force_authenticate(self.requester)
        res = self.client.get('/api/users/me/')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['username'], 'requester')


class SeedUsersCommandTestCase(TestCase):
    def test_seed_is_repeatable(self):
        call_command('seed_users', stdout=StringIO())
        call_command('seed_users', stdout=StringIO())

        buyer = User.objects.get(username='buyer.one')
        self.assertFalse(buyer.has_usable_password())
        self.assertEqual(buyer.profile.line_manager.username, 'procurement.manager')
        self.assertEqual(UserRole.objects.filter(user=buyer).count(), 1)
        self.assertTrue(User.objects.get(username='procurement.admin').is_admin)
