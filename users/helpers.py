# ------- Helpers -------
from .models import AppRole, UserRole

# app roles allowed to act on any approval step
APPROVAL_OVERRIDE_ROLES = (AppRole.ADMIN, AppRole.MANAGER)


def user_app_roles(user) -> set[str]:
    if not user or not getattr(user, "is_authenticated", False):
        return set()
    return set(UserRole.objects.filter(user=user).values_list("role", flat=True))


def has_app_role(user, *roles) -> bool:
    if not user or not getattr(user, "is_authenticated", False):
        return False
    return UserRole.objects.filter(user=user, role__in=roles).exists()


def _line_manager_id(user):
    prof = getattr(user, "profile", None)
    return getattr(prof, "line_manager_id", None)


def user_department(user):
    prof = getattr(user, "profile", None)
    return (getattr(prof, "department", "") or "").strip() or None
