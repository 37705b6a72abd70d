from django_filters import rest_framework as filters
from django_filters.filters import BaseInFilter, CharFilter

from .models import RoleRequest


class CharInFilter(BaseInFilter, CharFilter):
    """Accepts comma-separated values, e.g. ?status=pending,approved"""
    pass


class RoleRequestFilter(filters.FilterSet):
    status = CharInFilter(field_name='status', lookup_expr='in')
    requested_role = CharInFilter(field_name='requested_role', lookup_expr='in')
    user = filters.NumberFilter(field_name='user_id')
    # requests waiting for the admin stage: line manager already signed off
    awaiting_admin = filters.BooleanFilter(field_name='line_manager_approved_at', lookup_expr='isnull', exclude=True)

    class Meta:
        model = RoleRequest
        fields = ['status', 'requested_role', 'user', 'awaiting_admin']
