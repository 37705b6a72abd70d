from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import DOMAIN_ERRORS, domain_error_response
from users.filters import RoleRequestFilter
from users.models import AppRole, RoleRequest
from users.serializers import (
    CurrentUserSerializer, RoleRequestCreateSerializer, RoleRequestDecisionSerializer, RoleRequestSerializer,
)
from users import services


class CurrentUserView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(CurrentUserSerializer(request.user).data)


class AppRoleChoicesView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response([{"value": value, "label": label} for value, label in AppRole.choices])


class RoleRequestViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         mixins.CreateModelMixin,
                         viewsets.GenericViewSet):
    """
    /api/users/role-requests/
      POST                      -> request a role (line manager taken from profile)
      POST {id}/manager-approve -> stage 1
      POST {id}/admin-approve   -> stage 2, grants the role
      POST {id}/reject          -> stage 2 only (admins), comments required
    """
    serializer_class = RoleRequestSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = RoleRequestFilter
    ordering_fields = ['created_at', 'status', 'requested_role']
    ordering = ['-created_at']

    def get_queryset(self):
        return services.visible_role_requests(self.request.user)

    def create(self, request, *args, **kwargs):
        ser = RoleRequestCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            rr = services.create_role_request(
                request.user, ser.validated_data["requested_role"], ser.validated_data["justification"]
            )
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        return Response(RoleRequestSerializer(rr).data, status=status.HTTP_201_CREATED)

    def _decide(self, request, pk, fn):
        rr = get_object_or_404(RoleRequest, pk=pk)
        ser = RoleRequestDecisionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            rr = fn(rr, request.user, ser.validated_data.get("comments", ""))
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        return Response(RoleRequestSerializer(rr).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="manager-approve")
    def manager_approve(self, request, pk=None):
        return self._decide(request, pk, services.approve_by_line_manager)

    @action(detail=True, methods=["post"], url_path="admin-approve")
    def admin_approve(self, request, pk=None):
        return self._decide(request, pk, services.approve_by_admin)

    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        return self._decide(request, pk, services.reject_role_request)
