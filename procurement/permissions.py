from rest_framework.permissions import BasePermission, SAFE_METHODS

from users.helpers import has_app_role
from users.models import AppRole

PROCUREMENT_ROLES = (AppRole.BUYER, AppRole.MANAGER)


def _is_procurement_authorized(user) -> bool:
    if getattr(user, "is_superuser", False) or user.is_admin:
        return True
    return has_app_role(user, *PROCUREMENT_ROLES)


class IsProcurementAuthorized(BasePermission):
    """Buyers, managers and admins; everyone signed in may read."""

    def has_permission(self, request, view):
        u = request.user
        if not u or not u.is_authenticated:
            return False
        if request.method in SAFE_METHODS:
            return True
        return _is_procurement_authorized(u)

    def has_object_permission(self, request, view, obj):
        # Mirror the same logic at object-level
        return self.has_permission(request, view)
