from rest_framework.permissions import BasePermission, SAFE_METHODS

from users.helpers import has_app_role
from users.models import AppRole


class IsMatrixAdminOrReadOnly(BasePermission):
    """Anyone signed in may read the matrix; admins edit it."""

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        if request.method in SAFE_METHODS:
            return True
        return user.is_superuser or user.is_admin


class CanViewAudit(BasePermission):
    def has_permission(self, request, view):
        user = request.user
        return (
            user
            and user.is_authenticated
            and (
                user.is_superuser
                or user.is_admin
                or has_app_role(user, AppRole.MANAGER)
            )
        )
