from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models
from django.utils import timezone

User = settings.AUTH_USER_MODEL


class ApprovalCategory(models.TextChoices):
    PURCHASE_REQUEST = "purchase_request", "Purchase Request"
    PURCHASE_ORDER = "purchase_order", "Purchase Order"
    CONTRACTS = "contracts", "Contracts"
    CAPEX = "capex", "CAPEX"
    PAYMENTS = "payments", "Payments"
    FLOAT_CASH = "float_cash", "Float Cash"


class WorkflowStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    ESCALATED = "escalated", "Escalated"
    AUTO_APPROVED = "auto_approved", "Auto Approved"


class ActionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


TERMINAL_WORKFLOW_STATUSES = {
    WorkflowStatus.APPROVED,
    WorkflowStatus.REJECTED,
    WorkflowStatus.ESCALATED,
    WorkflowStatus.AUTO_APPROVED,
}

role_code_validator = RegexValidator(
    regex=r"^[A-Z_]{2,}$",
    message="Code must be uppercase letters and underscores.",
)


class ApprovalRole(models.Model):
    code = models.CharField(max_length=50, unique=True, validators=[role_code_validator])
    name_en = models.CharField(max_length=200)
    name_ar = models.CharField(max_length=200, blank=True)
    description = models.TextField(blank=True)
    hierarchy_level = models.PositiveSmallIntegerField(
        default=1, validators=[MinValueValidator(1), MaxValueValidator(10)]
    )
    is_active = models.BooleanField(default=True)
    permissions = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["hierarchy_level", "code"]

    def __str__(self):
        return f"{self.code} · {self.name_en}"

    def clean(self):
        if len((self.name_en or "").strip()) < 2:
            raise ValidationError({"name_en": "Name is required."})


class ApprovalRule(models.Model):
    category = models.CharField(max_length=30, choices=ApprovalCategory.choices, db_index=True)
    name_en = models.CharField(max_length=200)
    name_ar = models.CharField(max_length=200, blank=True)
    department = models.CharField(max_length=100, null=True, blank=True, db_index=True)  # null = every department

    min_amount = models.DecimalField(max_digits=16, decimal_places=2, default=0)
    max_amount = models.DecimalField(max_digits=16, decimal_places=2, null=True, blank=True)  # null = unbounded
    currency = models.CharField(max_length=3, default="AED")
    auto_approve_below = models.DecimalField(max_digits=16, decimal_places=2, null=True, blank=True)

    requires_sequential = models.BooleanField(default=True)
    escalation_hours = models.PositiveIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1), MaxValueValidator(168)]
    )
    version = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)

    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["category", "min_amount", "id"]
        indexes = [
            models.Index(fields=["category", "is_active"], name="approval_rule_cat_active_idx"),
        ]

    def __str__(self):
        upper = self.max_amount if self.max_amount is not None else "∞"
        return f"{self.category} · {self.name_en} [{self.min_amount} – {upper}]"

    def contains(self, amount) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount <= self.max_amount

    def clean(self):
        errors = {}
        if self.min_amount is not None and self.min_amount < 0:
            errors["min_amount"] = "Minimum amount cannot be negative."
        if self.max_amount is not None and self.min_amount is not None and self.max_amount <= self.min_amount:
            errors["max_amount"] = "Maximum amount must be greater than the minimum amount."
        if self.auto_approve_below is not None and self.auto_approve_below < 0:
            errors["auto_approve_below"] = "Auto-approve threshold cannot be negative."
        if len((self.name_en or "").strip()) < 2:
            errors["name_en"] = "Name is required."
        if errors:
            raise ValidationError(errors)
        if self.department is not None:
            self.department = self.department.strip() or None


class RuleApprover(models.Model):
    rule = models.ForeignKey(ApprovalRule, on_delete=models.CASCADE, related_name="approvers")
    approval_role = models.ForeignKey(ApprovalRole, on_delete=models.PROTECT, related_name="rule_approvers")
    sequence_order = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    is_mandatory = models.BooleanField(default=True)
    can_delegate = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("rule", "sequence_order")]
        ordering = ["rule", "sequence_order"]

    def __str__(self):
        return f"{self.rule_id} · {self.sequence_order} · {self.approval_role.code}"


class OverrideType(models.TextChoices):
    EMERGENCY_PURCHASE = "emergency_purchase", "Emergency Purchase"
    SINGLE_SOURCE_JUSTIFICATION = "single_source_justification", "Single Source Justification"
    CAPEX_SPECIAL = "capex_special", "CAPEX Special"
    FLOAT_CASH_REPLENISHMENT = "float_cash_replenishment", "Float Cash Replenishment"
    BUDGET_OVERRIDE = "budget_override", "Budget Override"


class ApprovalOverride(models.Model):
    """
    An exception path in the matrix, e.g. an emergency purchase that may skip
    the levels listed in `bypass_levels`. A null category applies to all.
    """
    override_type = models.CharField(max_length=40, choices=OverrideType.choices)
    name_en = models.CharField(max_length=200)
    name_ar = models.CharField(max_length=200, blank=True)
    category = models.CharField(max_length=30, choices=ApprovalCategory.choices, null=True, blank=True)
    conditions = models.JSONField(default=dict, blank=True)
    bypass_levels = models.JSONField(default=list, blank=True)
    require_justification = models.BooleanField(default=True)
    max_amount = models.DecimalField(max_digits=16, decimal_places=2, null=True, blank=True)
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_until = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.override_type} · {self.name_en}"

    def in_effect(self, at=None) -> bool:
        if not self.is_active:
            return False
        at = at or timezone.now()
        if self.valid_from and at < self.valid_from:
            return False
        return not (self.valid_until and at > self.valid_until)

    def clean(self):
        errors = {}
        levels = self.bypass_levels
        if not isinstance(levels, list) or any(not isinstance(n, int) or isinstance(n, bool) or n < 1 for n in levels):
            errors["bypass_levels"] = "Bypass levels must be a list of positive step numbers."
        if not isinstance(self.conditions, dict):
            errors["conditions"] = "Conditions must be an object."
        if self.max_amount is not None and self.max_amount < 0:
            errors["max_amount"] = "Maximum amount cannot be negative."
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            errors["valid_until"] = "Validity must end after it starts."
        if len((self.name_en or "").strip()) < 2:
            errors["name_en"] = "Name is required."
        if errors:
            raise ValidationError(errors)


class ApprovalThreshold(models.Model):
    """Per-module amount band mapped to the approver role expected at that step."""
    module = models.CharField(max_length=30, choices=ApprovalCategory.choices, db_index=True)
    min_amount = models.DecimalField(max_digits=16, decimal_places=2, default=0)
    max_amount = models.DecimalField(max_digits=16, decimal_places=2, null=True, blank=True)
    approver_role = models.CharField(max_length=50)
    approver_role_ar = models.CharField(max_length=200, blank=True)
    sequence_order = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["module", "sequence_order", "id"]

    def __str__(self):
        upper = self.max_amount if self.max_amount is not None else "∞"
        return f"{self.module} · {self.sequence_order} · {self.approver_role} [{self.min_amount} – {upper}]"

    def clean(self):
        errors = {}
        if self.min_amount is not None and self.min_amount < 0:
            errors["min_amount"] = "Minimum amount cannot be negative."
        if self.max_amount is not None and self.min_amount is not None and self.max_amount <= self.min_amount:
            errors["max_amount"] = "Maximum amount must be greater than the minimum amount."
        if errors:
            raise ValidationError(errors)


class ApprovalWorkflow(models.Model):
    # Generic link to the document under approval (PR, PO, ...)
    content_type = models.ForeignKey(ContentType, on_delete=models.CASCADE)
    object_id = models.PositiveBigIntegerField()
    subject = GenericForeignKey("content_type", "object_id")

    category = models.CharField(max_length=30, choices=ApprovalCategory.choices, db_index=True)
    reference_code = models.CharField(max_length=100, blank=True)
    amount = models.DecimalField(max_digits=16, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="AED")

    rule = models.ForeignKey(ApprovalRule, null=True, blank=True, on_delete=models.SET_NULL, related_name="workflows")
    status = models.CharField(max_length=20, choices=WorkflowStatus.choices, default=WorkflowStatus.PENDING, db_index=True)
    current_level = models.PositiveIntegerField(default=1)

    initiated_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="initiated_workflows")
    snapshot = models.JSONField(default=dict, blank=True)  # rule + approvers at instantiation

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["content_type", "object_id"], name="approval_wf_subject_idx"),
        ]

    def __str__(self):
        return f"WF #{self.pk} {self.category} {self.reference_code or self.object_id} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORKFLOW_STATUSES


class WorkflowAction(models.Model):
    workflow = models.ForeignKey(ApprovalWorkflow, on_delete=models.CASCADE, related_name="actions")
    sequence_order = models.PositiveIntegerField()
    approval_role = models.ForeignKey(ApprovalRole, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    status = models.CharField(max_length=20, choices=ActionStatus.choices, default=ActionStatus.PENDING)
    approver = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="workflow_actions")
    comments = models.TextField(blank=True)
    acted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        unique_together = [("workflow", "sequence_order")]
        ordering = ["sequence_order"]

    def __str__(self):
        return f"{self.workflow_id} · step {self.sequence_order} ({self.status})"


class UserApprover(models.Model):
    """
    Who may act on a workflow step: the user holds `approver_role` (an
    ApprovalRole code) for the listed modules, up to `max_approval_amount`.
    An empty `modules` list means every category.
    """
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="approver_capabilities")
    approver_role = models.CharField(max_length=50)
    modules = models.JSONField(default=list, blank=True)
    max_approval_amount = models.DecimalField(max_digits=16, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True)

    assigned_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    assigned_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["approver_role", "user_id"]
        unique_together = [("user", "approver_role")]

    def __str__(self):
        return f"{self.user_id} · {self.approver_role}"

    def covers(self, category: str, amount) -> bool:
        if not self.is_active:
            return False
        if self.modules and category not in self.modules:
            return False
        return self.max_approval_amount is None or amount <= self.max_approval_amount


class ApprovalMatrixVersion(models.Model):
    version_number = models.PositiveIntegerField(unique=True)
    snapshot = models.JSONField(default=dict)
    change_summary = models.CharField(max_length=500, blank=True)
    changed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-version_number"]

    def __str__(self):
        return f"v{self.version_number} · {self.change_summary}"


class ApprovalAuditLog(models.Model):
    action = models.CharField(max_length=50, db_index=True)
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=64)
    old_values = models.JSONField(null=True, blank=True)
    new_values = models.JSONField(null=True, blank=True)
    performed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="approval_audit_entity_idx"),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_type}:{self.entity_id}"
