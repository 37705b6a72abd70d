from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import (
    ApprovalAuditLogViewSet, ApprovalMatrixVersionViewSet, ApprovalOverrideViewSet, ApprovalRoleViewSet,
    ApprovalRuleViewSet, ApprovalThresholdViewSet, ApprovalWorkflowViewSet, ExportMatrixView, RuleApproverViewSet,
    SimulateView, UserApproverViewSet,
)

router = DefaultRouter()
router.register(r'roles', ApprovalRoleViewSet, basename='approval-role')
router.register(r'rules', ApprovalRuleViewSet, basename='approval-rule')
router.register(r'rule-approvers', RuleApproverViewSet, basename='rule-approver')
router.register(r'user-approvers', UserApproverViewSet, basename='user-approver')
router.register(r'overrides', ApprovalOverrideViewSet, basename='approval-override')
router.register(r'thresholds', ApprovalThresholdViewSet, basename='approval-threshold')
router.register(r'workflows', ApprovalWorkflowViewSet, basename='approval-workflow')
router.register(r'versions', ApprovalMatrixVersionViewSet, basename='approval-version')
router.register(r'audit-logs', ApprovalAuditLogViewSet, basename='approval-audit-log')

urlpatterns = [
    path("simulate/", SimulateView.as_view(), name="approval-simulate"),
    path("export/", ExportMatrixView.as_view(), name="approval-export"),
]

urlpatterns += router.urls
