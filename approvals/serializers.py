from django.contrib.auth.models import User
from rest_framework import serializers

from .labels import label_for
from .models import (
    ApprovalAuditLog, ApprovalCategory, ApprovalMatrixVersion, ApprovalOverride, ApprovalRole, ApprovalRule,
    ApprovalThreshold, ApprovalWorkflow, OverrideType, RuleApprover, UserApprover, WorkflowAction, WorkflowStatus,
)


class MiniUserSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()

    def get_full_name(self, obj):
        fn = (obj.first_name or "").strip()
        ln = (obj.last_name or "").strip()
        return (fn + " " + ln).strip()

    class Meta:
        model = User
        fields = ["id", "username", "first_name", "last_name", "full_name"]


class ApprovalRoleSerializer(serializers.ModelSerializer):
    class Meta:
        model = ApprovalRole
        fields = [
            "id", "code", "name_en", "name_ar", "description", "hierarchy_level",
            "is_active", "permissions", "created_at", "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]


class RuleApproverSerializer(serializers.ModelSerializer):
    role = ApprovalRoleSerializer(source="approval_role", read_only=True)

    class Meta:
        model = RuleApprover
        fields = ["id", "rule", "approval_role", "role", "sequence_order", "is_mandatory", "can_delegate", "created_at"]
        read_only_fields = ["created_at"]
        # (rule, sequence_order) uniqueness is enforced by the service's full_clean
        validators = []


class RuleApproverAddSerializer(serializers.Serializer):
    approval_role = serializers.PrimaryKeyRelatedField(queryset=ApprovalRole.objects.all())
    sequence_order = serializers.IntegerField(required=False, min_value=1)
    is_mandatory = serializers.BooleanField(required=False, default=True)
    can_delegate = serializers.BooleanField(required=False, default=False)


class ApprovalRuleSerializer(serializers.ModelSerializer):
    approvers = RuleApproverSerializer(many=True, read_only=True)
    category_label = serializers.SerializerMethodField()

    class Meta:
        model = ApprovalRule
        fields = [
            "id", "category", "category_label", "name_en", "name_ar", "department",
            "min_amount", "max_amount", "currency", "auto_approve_below",
            "requires_sequential", "escalation_hours", "version", "is_active",
            "created_by", "created_at", "updated_at", "approvers",
        ]
        read_only_fields = ["version", "created_by", "created_at", "updated_at"]

    def get_category_label(self, obj):
        lang = (self.context or {}).get("lang", "en")
        return label_for(ApprovalCategory, obj.category, lang)


class WorkflowActionSerializer(serializers.ModelSerializer):
    approver_detail = MiniUserSerializer(source="approver", read_only=True)
    role_code = serializers.CharField(source="approval_role.code", read_only=True, default=None)
    role_name_en = serializers.CharField(source="approval_role.name_en", read_only=True, default=None)
    role_name_ar = serializers.CharField(source="approval_role.name_ar", read_only=True, default=None)

    class Meta:
        model = WorkflowAction
        fields = [
            "id", "sequence_order", "approval_role", "role_code", "role_name_en", "role_name_ar",
            "status", "approver", "approver_detail", "comments", "acted_at",
        ]


class ApprovalWorkflowSerializer(serializers.ModelSerializer):
    actions = WorkflowActionSerializer(many=True, read_only=True)
    subject_type = serializers.CharField(source="content_type.model", read_only=True)
    status_label = serializers.SerializerMethodField()
    category_label = serializers.SerializerMethodField()
    initiated_by_detail = MiniUserSerializer(source="initiated_by", read_only=True)

    class Meta:
        model = ApprovalWorkflow
        fields = [
            "id", "subject_type", "object_id", "category", "category_label", "reference_code",
            "amount", "currency", "rule", "status", "status_label", "current_level",
            "initiated_by", "initiated_by_detail", "snapshot",
            "created_at", "updated_at", "completed_at", "actions",
        ]

    def get_status_label(self, obj):
        return label_for(WorkflowStatus, obj.status, (self.context or {}).get("lang", "en"))

    def get_category_label(self, obj):
        return label_for(ApprovalCategory, obj.category, (self.context or {}).get("lang", "en"))


class DecisionSerializer(serializers.Serializer):
    comments = serializers.CharField(required=False, allow_blank=True, default="")
    action_id = serializers.IntegerField(required=False)


class UserApproverSerializer(serializers.ModelSerializer):
    user_detail = MiniUserSerializer(source="user", read_only=True)

    class Meta:
        model = UserApprover
        fields = [
            "id", "user", "user_detail", "approver_role", "modules", "max_approval_amount",
            "is_active", "assigned_by", "assigned_at", "updated_at",
        ]
        read_only_fields = ["assigned_by", "assigned_at", "updated_at"]

    def validate_modules(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Must be a list of categories.")
        unknown = [m for m in value if m not in ApprovalCategory.values]
        if unknown:
            raise serializers.ValidationError(f"Unknown categories: {', '.join(map(str, unknown))}")
        return value

    def validate_approver_role(self, value):
        if not ApprovalRole.objects.filter(code=value).exists():
            raise serializers.ValidationError(f"No approval role with code '{value}'.")
        return value


class ApprovalMatrixVersionSerializer(serializers.ModelSerializer):
    changed_by_detail = MiniUserSerializer(source="changed_by", read_only=True)

    class Meta:
        model = ApprovalMatrixVersion
        fields = ["id", "version_number", "snapshot", "change_summary", "changed_by", "changed_by_detail", "created_at"]


class ApprovalAuditLogSerializer(serializers.ModelSerializer):
    performed_by_detail = MiniUserSerializer(source="performed_by", read_only=True)

    class Meta:
        model = ApprovalAuditLog
        fields = [
            "id", "action", "entity_type", "entity_id", "old_values", "new_values",
            "performed_by", "performed_by_detail", "created_at",
        ]


class SimulateSerializer(serializers.Serializer):
    category = serializers.ChoiceField(choices=ApprovalCategory.choices)
    amount = serializers.DecimalField(max_digits=16, decimal_places=2, min_value=0)
    department = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class ApprovalOverrideSerializer(serializers.ModelSerializer):
    override_type_label = serializers.SerializerMethodField()
    category_label = serializers.SerializerMethodField()
    in_effect = serializers.SerializerMethodField()

    class Meta:
        model = ApprovalOverride
        fields = [
            "id", "override_type", "override_type_label", "name_en", "name_ar", "category", "category_label",
            "conditions", "bypass_levels", "require_justification", "max_amount",
            "valid_from", "valid_until", "is_active", "in_effect",
            "created_by", "created_at", "updated_at",
        ]
        read_only_fields = ["created_by", "created_at", "updated_at"]

    def get_override_type_label(self, obj):
        return label_for(OverrideType, obj.override_type, (self.context or {}).get("lang", "en"))

    def get_category_label(self, obj):
        if not obj.category:
            return None
        return label_for(ApprovalCategory, obj.category, (self.context or {}).get("lang", "en"))

    def get_in_effect(self, obj):
        return obj.in_effect()


class ApprovalThresholdSerializer(serializers.ModelSerializer):
    class Meta:
        model = ApprovalThreshold
        fields = [
            "id", "module", "min_amount", "max_amount", "approver_role", "approver_role_ar",
            "sequence_order", "is_active", "created_at", "updated_at",
        ]
        read_only_fields = ["created_at", "updated_at"]

    def validate_approver_role(self, value):
        if not ApprovalRole.objects.filter(code=value).exists():
            raise serializers.ValidationError(f"No approval role with code '{value}'.")
        return value
