import django_filters

from .models import RFQ, PurchaseRequest, Vendor


class VendorFilter(django_filters.FilterSet):
    code = django_filters.CharFilter(field_name="code", lookup_expr="icontains")
    name = django_filters.CharFilter(field_name="company_name_en", lookup_expr="icontains")

    class Meta:
        model = Vendor
        fields = ["code", "name", "is_active"]


class RFQFilter(django_filters.FilterSet):
    created_at__gte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at__lte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = RFQ
        fields = {
            "status": ["exact"],
            "code": ["icontains"],
            "recommended_vendor": ["exact"],
        }


class PurchaseRequestFilter(django_filters.FilterSet):
    created_at__gte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at__lte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="lte")
    has_override = django_filters.BooleanFilter(
        field_name="non_recommended_justification", lookup_expr="isnull", exclude=True
    )

    class Meta:
        model = PurchaseRequest
        fields = {
            "status": ["exact"],
            "requested_by": ["exact"],  # will filter by requester id
            "code": ["icontains"],  # allow partial matches
            "rfq": ["exact"],
            "vendor": ["exact"],
        }
