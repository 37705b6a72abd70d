# procurement/services.py
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from approvals.exceptions import WorkflowStateError

from .models import RFQ, RFQAuditLog, RFQVendor, PurchaseRequest, PurchaseRequestItem

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def log_rfq_audit(rfq: RFQ, action: str, details: dict, by_user=None) -> RFQAuditLog:
    return RFQAuditLog.objects.create(
        rfq=rfq,
        action=action,
        action_details=details,
        performed_by=by_user if getattr(by_user, "is_authenticated", False) else None,
    )


def recommended_quotation(rfq: RFQ):
    """
    The RFQ's explicit recommended vendor wins; otherwise the quotation
    flagged is_recommended. None when nothing is recommended.
    """
    quotations = list(rfq.quotations.select_related('vendor'))
    if rfq.recommended_vendor_id:
        match = next((q for q in quotations if q.vendor_id == rfq.recommended_vendor_id), None)
        if match is not None:
            return match
    return next((q for q in quotations if q.is_recommended), None)


def recommended_vendor_id(rfq: RFQ):
    if rfq.recommended_vendor_id:
        return rfq.recommended_vendor_id
    q = recommended_quotation(rfq)
    return q.vendor_id if q else None


@transaction.atomic
def set_recommended_vendor(rfq: RFQ, vendor_id, by_user=None, notes: str = "") -> RFQ:
    rfq = RFQ.objects.select_for_update().get(pk=rfq.pk)
    if rfq.is_closed:
        raise WorkflowStateError(f"RFQ {rfq.code} is {rfq.status}.")
    quotation = rfq.quotations.filter(vendor_id=vendor_id).first()
    if quotation is None:
        raise ValidationError({"vendor_id": "Vendor is not invited to this RFQ."})

    rfq.quotations.exclude(pk=quotation.pk).update(is_recommended=False)
    quotation.is_recommended = True
    quotation.save(update_fields=['is_recommended'])
    rfq.recommended_vendor_id = quotation.vendor_id
    rfq.recommendation_notes = notes or ""
    rfq.save(update_fields=['recommended_vendor', 'recommendation_notes', 'updated_at'])

    log_rfq_audit(rfq, 'vendor_recommended', {"vendor_id": quotation.vendor_id, "notes": notes or None}, by_user)
    return rfq


@transaction.atomic
def select_vendor(rfq: RFQ, vendor_id, justification=None, by_user=None) -> PurchaseRequest:
    """
    Convert an RFQ into a Purchase Request priced from the chosen vendor's
    quotation. Choosing anyone but the recommended vendor needs a written
    justification, which is stored on the PR. The RFQ ends up completed.
    """
    rfq = RFQ.objects.select_for_update().get(pk=rfq.pk)
    if rfq.is_closed:
        raise WorkflowStateError(f"RFQ {rfq.code} is already {rfq.status} and cannot be converted.")

    quotation = (
        RFQVendor.objects.select_related('vendor')
        .filter(rfq=rfq, vendor_id=vendor_id)
        .first()
    )
    if quotation is None:
        raise ValidationError({"vendor_id": "The selected vendor has no quotation on this RFQ."})

    recommended_id = recommended_vendor_id(rfq)
    is_override = recommended_id is not None and quotation.vendor_id != recommended_id
    justification = (justification or "").strip()
    if is_override and not justification:
        raise ValidationError({
            "justification": "A justification is required when selecting a vendor other than the recommended one."
        })
    stored_justification = justification if is_override else None

    total = quotation.total_amount or ZERO
    pr = PurchaseRequest.objects.create(
        rfq=rfq,
        title_en=rfq.title_en,
        title_ar=rfq.title_ar,
        description=rfq.description,
        vendor=quotation.vendor,
        subtotal=total,
        total_amount=total,
        currency=quotation.currency or 'AED',
        requested_by=by_user,
        created_by=by_user,
        non_recommended_justification=stored_justification,
    )

    prices = {p.rfq_item_id: p for p in quotation.prices.all()}
    PurchaseRequestItem.objects.bulk_create([
        PurchaseRequestItem(
            purchase_request=pr,
            rfq_item=item,
            item_number=item.item_number,
            description_en=item.description_en,
            description_ar=item.description_ar,
            quantity=item.quantity,
            unit=item.unit,
            specifications=item.specifications,
            unit_price=prices[item.id].unit_price if item.id in prices else ZERO,
            total_price=prices[item.id].total_price if item.id in prices else ZERO,
        )
        for item in rfq.items.all()
    ])

    rfq.status = 'completed'
    rfq.converted_to_pr_at = timezone.now()
    rfq.converted_to_pr_by = by_user
    rfq.save(update_fields=['status', 'converted_to_pr_at', 'converted_to_pr_by', 'updated_at'])

    rfq.quotations.exclude(pk=quotation.pk).update(is_selected=False)
    RFQVendor.objects.filter(pk=quotation.pk).update(is_selected=True)

    log_rfq_audit(rfq, 'converted_to_pr', {
        "pr_id": pr.id,
        "pr_code": pr.code,
        "selected_vendor_id": quotation.vendor_id,
        "selected_vendor_code": quotation.vendor.code,
        "total_amount": str(total),
        "non_recommended_justification": stored_justification,
    }, by_user)

    if is_override:
        logger.info("RFQ %s converted to %s with non-recommended vendor %s", rfq.code, pr.code, quotation.vendor.code)
    else:
        logger.info("RFQ %s converted to %s (vendor %s)", rfq.code, pr.code, quotation.vendor.code)
    return pr


@transaction.atomic
def cancel_purchase_request(pr: PurchaseRequest, by_user, reason: str = "") -> PurchaseRequest:
    pr = PurchaseRequest.objects.select_for_update().get(pk=pr.pk)
    if pr.status not in ('draft', 'rejected'):
        raise WorkflowStateError(f"Only draft or rejected requests can be cancelled (current: {pr.status}).")
    pr.status = 'cancelled'
    pr.save(update_fields=['status', 'updated_at'])
    logger.info("PR %s cancelled by user %s: %s", pr.code, getattr(by_user, 'pk', None), reason)
    return pr
