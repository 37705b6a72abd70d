# approvals/admin.py
from django.contrib import admin
from django.contrib.contenttypes.models import ContentType
from django.urls import NoReverseMatch, reverse
from django.utils.html import format_html

from .models import (
    ApprovalAuditLog, ApprovalMatrixVersion, ApprovalOverride, ApprovalRole, ApprovalRule, ApprovalThreshold,
    ApprovalWorkflow, RuleApprover, UserApprover, WorkflowAction,
)

# ---------- Matrix ----------

@admin.register(ApprovalRole)
class ApprovalRoleAdmin(admin.ModelAdmin):
    list_display = ("id", "code", "name_en", "hierarchy_level", "is_active")
    list_filter = ("is_active",)
    search_fields = ("code", "name_en", "name_ar")
    ordering = ("hierarchy_level", "code")


class RuleApproverInline(admin.TabularInline):
    model = RuleApprover
    extra = 0
    fields = ("sequence_order", "approval_role", "is_mandatory", "can_delegate")
    ordering = ("sequence_order",)


@admin.register(ApprovalRule)
class ApprovalRuleAdmin(admin.ModelAdmin):
    list_display = (
        "id", "category", "name_en", "department", "min_amount", "max_amount", "auto_approve_below", "version", "is_active",
    )
    list_filter = ("category", "department", "is_active")
    search_fields = ("name_en", "name_ar")
    inlines = [RuleApproverInline]
    readonly_fields = ("version", "created_by", "created_at", "updated_at")
    ordering = ("category", "min_amount", "id")


@admin.register(UserApprover)
class UserApproverAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "approver_role", "modules", "max_approval_amount", "is_active")
    list_filter = ("approver_role", "is_active")
    search_fields = ("user__username", "user__first_name", "user__last_name")


@admin.register(ApprovalOverride)
class ApprovalOverrideAdmin(admin.ModelAdmin):
    list_display = ("id", "override_type", "name_en", "category", "bypass_levels", "valid_from", "valid_until", "is_active")
    list_filter = ("override_type", "category", "is_active")
    search_fields = ("name_en", "name_ar")
    readonly_fields = ("created_by", "created_at", "updated_at")


@admin.register(ApprovalThreshold)
class ApprovalThresholdAdmin(admin.ModelAdmin):
    list_display = ("id", "module", "sequence_order", "approver_role", "min_amount", "max_amount", "is_active")
    list_filter = ("module", "is_active")
    ordering = ("module", "sequence_order", "id")


# ---------- Workflows ----------

class WorkflowActionInline(admin.TabularInline):
    model = WorkflowAction
    extra = 0
    fields = ("sequence_order", "approval_role", "status", "approver", "comments", "acted_at")
    readonly_fields = fields
    ordering = ("sequence_order",)
    can_delete = False


@admin.register(ApprovalWorkflow)
class ApprovalWorkflowAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "subject_ct",
        "object_id",
        "subject_link",
        "category",
        "amount",
        "status",
        "current_level",
        "created_at",
    )
    list_filter = ("status", "category")
    search_fields = ("object_id", "reference_code")
    date_hierarchy = "created_at"
    inlines = [WorkflowActionInline]
    readonly_fields = ("created_at", "updated_at", "completed_at", "snapshot")

    @admin.display(description="Subject type")
    def subject_ct(self, obj: ApprovalWorkflow):
        return f"{obj.content_type.app_label}.{obj.content_type.model}"

    @admin.display(description="Subject")
    def subject_link(self, obj: ApprovalWorkflow):
        subj = obj.subject
        if not subj:
            return "-"
        label = str(subj)
        # link to the subject's admin page when it is registered
        try:
            ct: ContentType = obj.content_type
            url = reverse(f"admin:{ct.app_label}_{ct.model}_change", args=[obj.object_id])
            return format_html('<a href="{}">{}</a>', url, label)
        except NoReverseMatch:
            return label


# ---------- History ----------

@admin.register(ApprovalMatrixVersion)
class ApprovalMatrixVersionAdmin(admin.ModelAdmin):
    list_display = ("version_number", "change_summary", "changed_by", "created_at")
    readonly_fields = ("version_number", "snapshot", "change_summary", "changed_by", "created_at")
    ordering = ("-version_number",)


@admin.register(ApprovalAuditLog)
class ApprovalAuditLogAdmin(admin.ModelAdmin):
    list_display = ("id", "action", "entity_type", "entity_id", "performed_by", "created_at")
    list_filter = ("action", "entity_type")
    search_fields = ("entity_id",)
    date_hierarchy = "created_at"
    readonly_fields = ("action", "entity_type", "entity_id", "old_values", "new_values", "performed_by", "created_at")
