from decimal import Decimal

from django.db.models import Sum
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .models import RFQVendor, RFQVendorPrice


def _recompute_quotation_total(rfq_vendor_id):
    total = (
        RFQVendorPrice.objects.filter(rfq_vendor_id=rfq_vendor_id)
        .aggregate(s=Sum('total_price'))['s']
    )
    RFQVendor.objects.filter(pk=rfq_vendor_id).update(total_amount=total if total is not None else Decimal('0.00'))


@receiver(post_save, sender=RFQVendorPrice)
def rfq_vendor_price_saved(sender, instance, **kwargs):
    # quotation total follows its price lines
    _recompute_quotation_total(instance.rfq_vendor_id)


@receiver(post_delete, sender=RFQVendorPrice)
def rfq_vendor_price_deleted(sender, instance, **kwargs):
    _recompute_quotation_total(instance.rfq_vendor_id)
