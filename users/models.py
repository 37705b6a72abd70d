from django.contrib.auth import get_user_model
from django.db import models

User = get_user_model()


class AppRole(models.TextChoices):
    ADMIN = "admin", "Admin"
    MANAGER = "manager", "Manager"
    BUYER = "buyer", "Buyer"
    APPROVER = "approver", "Approver"
    VIEWER = "viewer", "Viewer"


class RoleRequestStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class UserProfile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="profile")
    full_name = models.CharField(max_length=200, blank=True)
    department = models.CharField(max_length=100, blank=True)
    line_manager = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name="direct_reports"
    )

    def __str__(self):
        return self.full_name or self.user.username


class UserRole(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="app_roles")
    role = models.CharField(max_length=20, choices=AppRole.choices)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user", "role"], name="uniq_user_app_role"),
        ]

    def __str__(self):
        return f"{self.user.username} · {self.role}"


def _user_is_admin(self) -> bool:
    # guards AnonymousUser
    if not getattr(self, "is_authenticated", False):
        return False
    if getattr(self, "is_superuser", False):
        return True
    return self.app_roles.filter(role=AppRole.ADMIN).exists()

# attach as a property
User.add_to_class("is_admin", property(_user_is_admin))


class RoleRequest(models.Model):
    """
    A user's request for an application role. Two gates in order:
    the line manager signs off first, then an admin decides.
    """
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="role_requests")
    requested_role = models.CharField(max_length=20, choices=AppRole.choices)
    justification = models.TextField()
    status = models.CharField(
        max_length=20, choices=RoleRequestStatus.choices, default=RoleRequestStatus.PENDING, db_index=True
    )

    line_manager = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    line_manager_approved_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    line_manager_approved_at = models.DateTimeField(null=True, blank=True)
    line_manager_comments = models.TextField(blank=True)

    admin_approved_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    admin_approved_at = models.DateTimeField(null=True, blank=True)
    admin_comments = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"RR #{self.pk} {self.user_id} → {self.requested_role} ({self.status})"
