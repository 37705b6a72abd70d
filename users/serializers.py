from django.contrib.auth.models import User
from rest_framework import serializers

from .models import AppRole, RoleRequest


class SimpleUserSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'first_name', 'last_name', 'email', 'full_name']

    def get_full_name(self, obj):
        profile = getattr(obj, 'profile', None)
        if profile and profile.full_name:
            return profile.full_name
        return obj.get_full_name() or obj.username


class CurrentUserSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source='profile.full_name', default='')
    department = serializers.CharField(source='profile.department', default='')
    line_manager = serializers.IntegerField(source='profile.line_manager_id', default=None)
    roles = serializers.SerializerMethodField()
    is_admin = serializers.BooleanField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'full_name', 'department', 'line_manager', 'roles', 'is_admin', 'is_superuser']

    def get_roles(self, obj):
        return sorted(obj.app_roles.values_list('role', flat=True))


class RoleRequestSerializer(serializers.ModelSerializer):
    user = SimpleUserSerializer(read_only=True)
    line_manager = SimpleUserSerializer(read_only=True)
    requested_role_label = serializers.CharField(source='get_requested_role_display', read_only=True)
    status_label = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = RoleRequest
        fields = [
            'id', 'user', 'requested_role', 'requested_role_label', 'justification',
            'status', 'status_label',
            'line_manager', 'line_manager_approved_by', 'line_manager_approved_at', 'line_manager_comments',
            'admin_approved_by', 'admin_approved_at', 'admin_comments',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class RoleRequestCreateSerializer(serializers.Serializer):
    requested_role = serializers.ChoiceField(choices=AppRole.choices)
    justification = serializers.CharField(allow_blank=False, trim_whitespace=True)


class RoleRequestDecisionSerializer(serializers.Serializer):
    comments = serializers.CharField(required=False, allow_blank=True, default='')
