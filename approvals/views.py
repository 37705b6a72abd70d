from django.db.models import Prefetch
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import DOMAIN_ERRORS, domain_error_response

from . import services
from .filters import (
    ApprovalAuditLogFilter, ApprovalOverrideFilter, ApprovalRuleFilter, ApprovalThresholdFilter,
    ApprovalWorkflowFilter, UserApproverFilter,
)
from .models import (
    ApprovalAuditLog, ApprovalMatrixVersion, ApprovalOverride, ApprovalRole, ApprovalRule, ApprovalThreshold,
    ApprovalWorkflow, RuleApprover, UserApprover, WorkflowAction,
)
from .permissions import CanViewAudit, IsMatrixAdminOrReadOnly
from .serializers import (
    ApprovalAuditLogSerializer, ApprovalMatrixVersionSerializer, ApprovalOverrideSerializer,
    ApprovalRoleSerializer, ApprovalRuleSerializer, ApprovalThresholdSerializer, ApprovalWorkflowSerializer,
    DecisionSerializer, RuleApproverAddSerializer, RuleApproverSerializer, SimulateSerializer,
    UserApproverSerializer,
)


def _lang(request):
    return "ar" if (request.query_params.get("lang") or "").lower() == "ar" else "en"


class ApprovalRoleViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.CreateModelMixin,
                          mixins.UpdateModelMixin,
                          viewsets.GenericViewSet):
    queryset = ApprovalRole.objects.all()
    serializer_class = ApprovalRoleSerializer
    permission_classes = [IsMatrixAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_fields = ["is_active", "hierarchy_level"]
    ordering_fields = ["hierarchy_level", "code", "name_en"]
    ordering = ["hierarchy_level", "code"]

    def perform_create(self, serializer):
        serializer.instance = services.add_role(dict(serializer.validated_data), by_user=self.request.user)

    def perform_update(self, serializer):
        serializer.instance = services.edit_role(
            serializer.instance, dict(serializer.validated_data), by_user=self.request.user
        )


class ApprovalRuleViewSet(viewsets.ModelViewSet):
    """
    Matrix rules. Writes go through the service layer (validation, band
    overlap check, version bump, audit and matrix snapshot).
    """
    serializer_class = ApprovalRuleSerializer
    permission_classes = [IsMatrixAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = ApprovalRuleFilter
    ordering_fields = ["category", "min_amount", "name_en", "updated_at"]
    ordering = ["category", "min_amount", "id"]

    def get_queryset(self):
        approvers = RuleApprover.objects.select_related("approval_role").order_by("sequence_order")
        return ApprovalRule.objects.prefetch_related(Prefetch("approvers", queryset=approvers))

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["lang"] = _lang(self.request)
        return ctx

    def perform_create(self, serializer):
        serializer.instance = services.add_rule(dict(serializer.validated_data), by_user=self.request.user)

    def perform_update(self, serializer):
        serializer.instance = services.edit_rule(
            serializer.instance, dict(serializer.validated_data), by_user=self.request.user
        )

    def perform_destroy(self, instance):
        services.delete_rule(instance, by_user=self.request.user)

    @action(detail=True, methods=["post"], url_path="approvers")
    def add_approver(self, request, pk=None):
        rule = self.get_object()
        ser = RuleApproverAddSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            approver = services.add_rule_approver(rule, by_user=request.user, **ser.validated_data)
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        return Response(RuleApproverSerializer(approver).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["delete"], url_path=r"approvers/(?P<approver_id>\d+)")
    def remove_approver(self, request, pk=None, approver_id=None):
        rule = self.get_object()
        approver = get_object_or_404(RuleApprover, pk=approver_id, rule=rule)
        services.remove_rule_approver(approver, by_user=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class RuleApproverViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.CreateModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    queryset = RuleApprover.objects.select_related("approval_role").order_by("rule_id", "sequence_order")
    serializer_class = RuleApproverSerializer
    permission_classes = [IsMatrixAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["rule", "approval_role"]

    def perform_create(self, serializer):
        data = dict(serializer.validated_data)
        serializer.instance = services.add_rule_approver(
            data.pop("rule"), data.pop("approval_role"), by_user=self.request.user, **data
        )

    def perform_destroy(self, instance):
        services.remove_rule_approver(instance, by_user=self.request.user)


class ApprovalOverrideViewSet(mixins.ListModelMixin,
                              mixins.RetrieveModelMixin,
                              mixins.CreateModelMixin,
                              mixins.UpdateModelMixin,
                              viewsets.GenericViewSet):
    """Overrides are switched off with is_active rather than deleted."""
    queryset = ApprovalOverride.objects.all()
    serializer_class = ApprovalOverrideSerializer
    permission_classes = [IsMatrixAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = ApprovalOverrideFilter
    ordering_fields = ["created_at", "override_type", "name_en"]
    ordering = ["-created_at", "-id"]

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["lang"] = _lang(self.request)
        return ctx

    def perform_create(self, serializer):
        serializer.instance = services.add_override(dict(serializer.validated_data), by_user=self.request.user)

    def perform_update(self, serializer):
        serializer.instance = services.edit_override(
            serializer.instance, dict(serializer.validated_data), by_user=self.request.user
        )

    @action(detail=False, methods=["get"], url_path="in-effect")
    def in_effect(self, request):
        overrides = services.overrides_in_effect(category=request.query_params.get("category"))
        return Response(self.get_serializer(overrides, many=True).data)


class ApprovalThresholdViewSet(viewsets.ModelViewSet):
    queryset = ApprovalThreshold.objects.all()
    serializer_class = ApprovalThresholdSerializer
    permission_classes = [IsMatrixAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = ApprovalThresholdFilter
    ordering_fields = ["module", "sequence_order", "min_amount"]
    ordering = ["module", "sequence_order", "id"]

    def perform_create(self, serializer):
        serializer.instance = services.add_threshold(dict(serializer.validated_data), by_user=self.request.user)

    def perform_update(self, serializer):
        serializer.instance = services.edit_threshold(
            serializer.instance, dict(serializer.validated_data), by_user=self.request.user
        )

    def perform_destroy(self, instance):
        services.delete_threshold(instance, by_user=self.request.user)


class UserApproverViewSet(viewsets.ModelViewSet):
    queryset = UserApprover.objects.select_related("user").all()
    serializer_class = UserApproverSerializer
    permission_classes = [IsMatrixAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = UserApproverFilter
    ordering_fields = ["approver_role", "assigned_at", "max_approval_amount"]
    ordering = ["approver_role", "user_id"]

    def perform_create(self, serializer):
        obj = serializer.save(assigned_by=self.request.user)
        services.log_audit("AssignApprover", "user_approvers", obj.pk,
                           new_values=services._as_dict(obj), by_user=self.request.user)

    def perform_update(self, serializer):
        old = services._as_dict(serializer.instance)
        obj = serializer.save()
        services.log_audit("EditApprover", "user_approvers", obj.pk,
                           old_values=old, new_values=services._as_dict(obj), by_user=self.request.user)

    def perform_destroy(self, instance):
        old = services._as_dict(instance)
        pk = instance.pk
        instance.delete()
        services.log_audit("RemoveApprover", "user_approvers", pk, old_values=old, by_user=self.request.user)


class ApprovalWorkflowViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = ApprovalWorkflowSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = ApprovalWorkflowFilter
    ordering_fields = ["created_at", "amount", "status"]
    ordering = ["-created_at"]

    def get_queryset(self):
        actions = WorkflowAction.objects.select_related("approval_role", "approver").order_by("sequence_order")
        return (
            ApprovalWorkflow.objects
            .select_related("content_type", "initiated_by")
            .prefetch_related(Prefetch("actions", queryset=actions))
        )

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["lang"] = _lang(self.request)
        return ctx

    def _decide(self, request, approve: bool):
        wf = self.get_object()
        ser = DecisionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            _, _, outcome = services.record_decision(
                wf, request.user, approve,
                ser.validated_data.get("comments", ""),
                action_id=ser.validated_data.get("action_id"),
            )
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        wf = self.get_queryset().get(pk=wf.pk)
        return Response({"outcome": outcome, "workflow": self.get_serializer(wf).data})

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        return self._decide(request, approve=True)

    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        return self._decide(request, approve=False)

    @action(detail=True, methods=["get"], url_path="can-approve")
    def can_approve(self, request, pk=None):
        wf = self.get_object()
        allowed, reason = services.can_user_act(request.user, wf)
        return Response({"can_approve": allowed, "reason": reason})

    @action(detail=False, methods=["get"])
    def pending(self, request):
        inbox = services.pending_for_user(request.user, category=request.query_params.get("category"))
        page = self.paginate_queryset(inbox)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(inbox, many=True).data)


class ApprovalMatrixVersionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ApprovalMatrixVersion.objects.select_related("changed_by").all()
    serializer_class = ApprovalMatrixVersionSerializer
    permission_classes = [CanViewAudit]


class ApprovalAuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ApprovalAuditLog.objects.select_related("performed_by").all()
    serializer_class = ApprovalAuditLogSerializer
    permission_classes = [CanViewAudit]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = ApprovalAuditLogFilter
    ordering = ["-created_at", "-id"]


class SimulateView(APIView):
    """POST {category, amount, department?} -> matched rule, auto-approval flag and approval path."""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        ser = SimulateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        return Response(services.simulate(data["category"], data["amount"], data.get("department")))


class ExportMatrixView(APIView):
    permission_classes = [CanViewAudit]

    def get(self, request):
        return Response(services.export_matrix())
