from decimal import Decimal

from django.contrib.auth.models import User
from django.contrib.contenttypes.fields import GenericRelation
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models.functions import Cast, Substr
from django.utils import timezone

from approvals.models import ApprovalWorkflow


def next_sequence_code(model, prefix: str, field: str = "code") -> str:
    """PR-2026-0001 style codes, numbered per prefix and year."""
    stem = f"{prefix}-{timezone.now().year}-"
    # numeric order, so -10000 sorts after -9999
    last = (
        model.objects.filter(**{f"{field}__regex": rf"^{stem}[0-9]+$"})
        .annotate(seq=Cast(Substr(field, len(stem) + 1), models.BigIntegerField()))
        .order_by("-seq")
        .values_list("seq", flat=True)
        .first()
    )
    return f"{stem}{(last or 0) + 1:04d}"


class Vendor(models.Model):
    CURRENCY_CHOICES = [
        ('AED', 'UAE Dirham'),
        ('USD', 'US Dollar'),
        ('EUR', 'Euro'),
        ('GBP', 'British Pound'),
        ('SAR', 'Saudi Riyal'),
    ]

    # Basic Information
    code = models.CharField(max_length=30, unique=True)
    company_name_en = models.CharField(max_length=200)
    company_name_ar = models.CharField(max_length=200, blank=True)
    contact_person = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=30, blank=True)
    email = models.EmailField(blank=True)
    default_currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='AED')

    # Metadata
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['company_name_en']

    def __str__(self):
        return f"{self.code} - {self.company_name_en}"


class RFQ(models.Model):
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('issued', 'Issued'),
        ('under_review', 'Under Review'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]
    CLOSED_STATUSES = ('completed', 'cancelled')

    code = models.CharField(max_length=50, unique=True, blank=True)
    title_en = models.CharField(max_length=200)
    title_ar = models.CharField(max_length=200, blank=True)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft', db_index=True)
    submission_deadline = models.DateTimeField(null=True, blank=True)

    # Computed upstream (price / technical / commercial scoring)
    recommended_vendor = models.ForeignKey(
        Vendor, null=True, blank=True, on_delete=models.SET_NULL, related_name='recommended_rfqs'
    )
    recommendation_notes = models.TextField(blank=True)

    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='rfqs')
    converted_to_pr_at = models.DateTimeField(null=True, blank=True)
    converted_to_pr_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'RFQ'

    def __str__(self):
        return f"{self.code} - {self.title_en}"

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = next_sequence_code(RFQ, "RFQ")
        super().save(*args, **kwargs)

    @property
    def is_closed(self) -> bool:
        return self.status in self.CLOSED_STATUSES


class RFQItem(models.Model):
    rfq = models.ForeignKey(RFQ, on_delete=models.CASCADE, related_name='items')
    item_number = models.PositiveIntegerField(default=1)
    description_en = models.CharField(max_length=500)
    description_ar = models.CharField(max_length=500, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    unit = models.CharField(max_length=20, default='pcs')
    specifications = models.TextField(blank=True)

    class Meta:
        ordering = ['item_number', 'id']

    def __str__(self):
        return f"{self.rfq_id} · {self.item_number} · {self.description_en}"


class RFQVendor(models.Model):
    """A vendor invited to an RFQ, with its quotation once received."""
    rfq = models.ForeignKey(RFQ, on_delete=models.CASCADE, related_name='quotations')
    vendor = models.ForeignKey(Vendor, on_delete=models.PROTECT, related_name='rfq_quotations')

    quotation_received = models.BooleanField(default=False)
    quotation_received_at = models.DateTimeField(null=True, blank=True)
    total_amount = models.DecimalField(max_digits=16, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default='AED')
    delivery_days = models.PositiveIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True)

    is_recommended = models.BooleanField(default=False)
    is_selected = models.BooleanField(default=False)

    class Meta:
        unique_together = [('rfq', 'vendor')]
        ordering = ['rfq', 'id']

    def __str__(self):
        return f"{self.rfq.code} · {self.vendor.code}"


class RFQVendorPrice(models.Model):
    rfq_vendor = models.ForeignKey(RFQVendor, on_delete=models.CASCADE, related_name='prices')
    rfq_item = models.ForeignKey(RFQItem, on_delete=models.CASCADE, related_name='prices')
    unit_price = models.DecimalField(max_digits=15, decimal_places=2)
    total_price = models.DecimalField(max_digits=16, decimal_places=2)

    class Meta:
        unique_together = [('rfq_vendor', 'rfq_item')]

    def __str__(self):
        return f"{self.rfq_vendor_id} · item {self.rfq_item_id} · {self.unit_price}"


class RFQAuditLog(models.Model):
    rfq = models.ForeignKey(RFQ, on_delete=models.CASCADE, related_name='audit_logs')
    action = models.CharField(max_length=50)
    action_details = models.JSONField(default=dict, blank=True)
    performed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.rfq_id} · {self.action}"


class PurchaseRequest(models.Model):
    STATUS_CHOICES = [
        ('draft', 'Draft'),
        ('submitted', 'Pending Approval'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('cancelled', 'Cancelled'),
    ]

    # Basic Information
    code = models.CharField(max_length=50, unique=True, blank=True)
    title_en = models.CharField(max_length=200)
    title_ar = models.CharField(max_length=200, blank=True)
    description = models.TextField(blank=True)

    # Request Details
    requested_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='purchase_requests')
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='draft', db_index=True)

    # Source RFQ and the vendor chosen there
    rfq = models.ForeignKey(RFQ, null=True, blank=True, on_delete=models.SET_NULL, related_name='purchase_requests')
    vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.SET_NULL, related_name='purchase_requests')
    non_recommended_justification = models.TextField(null=True, blank=True)

    # Financial Information
    subtotal = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='AED')

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    approvals = GenericRelation(ApprovalWorkflow, related_query_name='purchase_request')

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.code} - {self.title_en}"

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = next_sequence_code(PurchaseRequest, "PR")
        super().save(*args, **kwargs)

    def handle_approval_event(self, *, workflow, event):
        """Keeps the PR status in step with its approval workflow."""
        if event in ("submitted", "moved"):
            self.status = 'submitted'
            self.submitted_at = self.submitted_at or timezone.now()
            self.save(update_fields=['status', 'submitted_at', 'updated_at'])
        elif event in ("completed", "auto_approved"):
            now = timezone.now()
            self.status = 'approved'
            self.submitted_at = self.submitted_at or now
            self.approved_at = workflow.completed_at or now
            self.save(update_fields=['status', 'submitted_at', 'approved_at', 'updated_at'])
        elif event == "rejected":
            self.status = 'rejected'
            self.save(update_fields=['status', 'updated_at'])


class PurchaseRequestItem(models.Model):
    purchase_request = models.ForeignKey(PurchaseRequest, on_delete=models.CASCADE, related_name='items')
    rfq_item = models.ForeignKey(RFQItem, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')

    # Item Details
    item_number = models.PositiveIntegerField(default=1)
    description_en = models.CharField(max_length=500)
    description_ar = models.CharField(max_length=500, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit = models.CharField(max_length=20, default='pcs')
    specifications = models.TextField(blank=True)
    unit_price = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    total_price = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal('0.00'))

    class Meta:
        ordering = ['item_number', 'id']

    def __str__(self):
        return f"{self.purchase_request_id} · {self.item_number} · {self.description_en}"
