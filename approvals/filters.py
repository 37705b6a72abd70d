from django_filters import rest_framework as filters
from django_filters.filters import BaseInFilter, CharFilter

from .models import (
    ApprovalAuditLog, ApprovalOverride, ApprovalRule, ApprovalThreshold, ApprovalWorkflow, UserApprover,
)


class CharInFilter(BaseInFilter, CharFilter):
    """Accepts comma-separated values, e.g. ?category=capex,payments"""
    pass


class ApprovalRuleFilter(filters.FilterSet):
    category = CharInFilter(field_name="category", lookup_expr="in")
    is_active = filters.BooleanFilter(field_name="is_active")
    name = filters.CharFilter(field_name="name_en", lookup_expr="icontains")
    department = filters.CharFilter(field_name="department")
    global_only = filters.BooleanFilter(field_name="department", lookup_expr="isnull")

    class Meta:
        model = ApprovalRule
        fields = ["category", "is_active", "name", "department", "global_only"]


class ApprovalWorkflowFilter(filters.FilterSet):
    category = CharInFilter(field_name="category", lookup_expr="in")
    status = CharInFilter(field_name="status", lookup_expr="in")
    subject_type = filters.CharFilter(field_name="content_type__model")
    object_id = filters.NumberFilter(field_name="object_id")
    reference_code = filters.CharFilter(field_name="reference_code", lookup_expr="icontains")

    class Meta:
        model = ApprovalWorkflow
        fields = ["category", "status", "subject_type", "object_id", "reference_code"]


class UserApproverFilter(filters.FilterSet):
    user = filters.NumberFilter(field_name="user_id")
    approver_role = CharInFilter(field_name="approver_role", lookup_expr="in")
    is_active = filters.BooleanFilter(field_name="is_active")

    class Meta:
        model = UserApprover
        fields = ["user", "approver_role", "is_active"]


class ApprovalAuditLogFilter(filters.FilterSet):
    action = CharInFilter(field_name="action", lookup_expr="in")
    entity_type = filters.CharFilter(field_name="entity_type")
    entity_id = filters.CharFilter(field_name="entity_id")
    performed_by = filters.NumberFilter(field_name="performed_by_id")
    created_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = ApprovalAuditLog
        fields = ["action", "entity_type", "entity_id", "performed_by"]


class ApprovalOverrideFilter(filters.FilterSet):
    override_type = CharInFilter(field_name="override_type", lookup_expr="in")
    category = CharInFilter(field_name="category", lookup_expr="in")
    is_active = filters.BooleanFilter(field_name="is_active")

    class Meta:
        model = ApprovalOverride
        fields = ["override_type", "category", "is_active"]


class ApprovalThresholdFilter(filters.FilterSet):
    module = CharInFilter(field_name="module", lookup_expr="in")
    approver_role = filters.CharFilter(field_name="approver_role")
    is_active = filters.BooleanFilter(field_name="is_active")

    class Meta:
        model = ApprovalThreshold
        fields = ["module", "approver_role", "is_active"]
