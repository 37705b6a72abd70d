from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User

from .models import RoleRequest, UserProfile, UserRole


# Inline profile for User admin
class UserProfileInline(admin.StackedInline):
    model = UserProfile
    can_delete = False
    verbose_name_plural = 'Profile'
    fk_name = 'user'


class UserRoleInline(admin.TabularInline):
    model = UserRole
    extra = 0


class UserAdmin(BaseUserAdmin):
    inlines = [UserProfileInline, UserRoleInline]

    def department(self, instance):
        return instance.profile.department if hasattr(instance, 'profile') else '-'

    def is_admin(self, instance):
        return instance.is_admin
    is_admin.boolean = True  # show as checkmark in admin
    is_admin.short_description = 'Admin?'

    list_display = BaseUserAdmin.list_display + ('department', 'is_admin',)
    search_fields = BaseUserAdmin.search_fields + ('profile__department',)


@admin.register(RoleRequest)
class RoleRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "requested_role", "status", "line_manager", "line_manager_approved_at", "admin_approved_at")
    list_filter = ("status", "requested_role")
    search_fields = ("user__username", "justification")
    readonly_fields = ("created_at", "updated_at")


# Unregister and re-register with custom admin
admin.site.unregister(User)
admin.site.register(User, UserAdmin)
