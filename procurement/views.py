from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Prefetch
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from approvals.models import ApprovalWorkflow, WorkflowAction
from core.exceptions import DOMAIN_ERRORS, domain_error_response

from .approval_service import decide, pending_purchase_requests, submit_purchase_request
from .filters import PurchaseRequestFilter, RFQFilter, VendorFilter
from .models import RFQ, RFQVendor, PurchaseRequest, Vendor
from .permissions import IsProcurementAuthorized
from .serializers import (
    ConvertToPRSerializer, PurchaseRequestSerializer, RecommendVendorSerializer, RFQAuditLogSerializer,
    RFQSerializer, RFQVendorSerializer, VendorSerializer,
)
from .services import cancel_purchase_request, select_vendor, set_recommended_vendor


class VendorViewSet(viewsets.ModelViewSet):
    queryset = Vendor.objects.all()
    serializer_class = VendorSerializer
    permission_classes = [IsProcurementAuthorized]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = VendorFilter
    search_fields = ['code', 'company_name_en', 'company_name_ar', 'email']
    ordering_fields = ['code', 'company_name_en', 'created_at']
    ordering = ['company_name_en']


class RFQViewSet(viewsets.ModelViewSet):
    serializer_class = RFQSerializer
    permission_classes = [IsProcurementAuthorized]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = RFQFilter
    search_fields = ['code', 'title_en', 'title_ar']
    ordering_fields = ['created_at', 'code', 'status']
    ordering = ['-created_at']

    def get_queryset(self):
        return RFQ.objects.prefetch_related(
            'items',
            Prefetch('quotations', queryset=RFQVendor.objects.select_related('vendor').prefetch_related('prices')),
        )

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    @action(detail=True, methods=["POST"], url_path="convert-to-pr")
    def convert_to_pr(self, request, pk=None):
        rfq = self.get_object()
        ser = ConvertToPRSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            pr = select_vendor(
                rfq, ser.validated_data["vendor_id"],
                justification=ser.validated_data.get("justification"),
                by_user=request.user,
            )
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        return Response(PurchaseRequestSerializer(pr, context={"request": request}).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["POST"])
    def recommend(self, request, pk=None):
        rfq = self.get_object()
        ser = RecommendVendorSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            rfq = set_recommended_vendor(rfq, ser.validated_data["vendor_id"], request.user, ser.validated_data["notes"])
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        return Response(self.get_serializer(self.get_queryset().get(pk=rfq.pk)).data)

    @action(detail=True, methods=["GET"], url_path="audit-logs")
    def audit_logs(self, request, pk=None):
        rfq = self.get_object()
        logs = rfq.audit_logs.select_related('performed_by')
        return Response(RFQAuditLogSerializer(logs, many=True).data)


class RFQQuotationViewSet(viewsets.ModelViewSet):
    queryset = RFQVendor.objects.select_related('vendor', 'rfq').prefetch_related('prices')
    serializer_class = RFQVendorSerializer
    permission_classes = [IsProcurementAuthorized]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['rfq', 'vendor', 'quotation_received']


class PurchaseRequestViewSet(viewsets.ModelViewSet):
    serializer_class = PurchaseRequestSerializer
    permission_classes = [IsProcurementAuthorized]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = PurchaseRequestFilter
    search_fields = ['code', 'title_en', 'title_ar', 'description']
    ordering_fields = ['created_at', 'code', 'status', 'total_amount']
    ordering = ['-created_at']

    def get_queryset(self):
        wf_qs = (
            ApprovalWorkflow.objects
            .prefetch_related(Prefetch("actions", queryset=WorkflowAction.objects.select_related("approval_role", "approver")))
            .order_by("-created_at")
        )
        return (
            PurchaseRequest.objects
            .select_related("vendor", "requested_by")
            .prefetch_related("items", Prefetch("approvals", queryset=wf_qs))
        )

    def perform_create(self, serializer):
        serializer.save(requested_by=self.request.user, created_by=self.request.user)

    def perform_destroy(self, instance):
        if instance.status != 'draft':
            raise DjangoValidationError("Only draft purchase requests can be deleted.")
        instance.delete()

    def _fresh(self, pr):
        return self.get_serializer(self.get_queryset().get(pk=pr.pk)).data

    @action(detail=True, methods=["POST"])
    def submit(self, request, pk=None):
        pr = self.get_object()
        if pr.status == 'cancelled':
            return Response({"detail": "Cancelled requests cannot be processed."}, status=400)
        try:
            submit_purchase_request(pr, request.user)
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        return Response(self._fresh(pr))

    @action(detail=True, methods=["POST"], permission_classes=[IsAuthenticated])
    def approve(self, request, pk=None):
        pr = self.get_object()
        if pr.status == 'cancelled':
            return Response({"detail": "Cancelled requests cannot be processed."}, status=400)
        try:
            _, outcome = decide(pr, request.user, approve=True, comment=request.data.get("comment", ""))
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        return Response({"outcome": outcome, "purchase_request": self._fresh(pr)})

    @action(detail=True, methods=["POST"], permission_classes=[IsAuthenticated])
    def reject(self, request, pk=None):
        pr = self.get_object()
        if pr.status == 'cancelled':
            return Response({"detail": "Cancelled requests cannot be processed."}, status=400)
        try:
            _, outcome = decide(pr, request.user, approve=False, comment=request.data.get("comment", ""))
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        return Response({"outcome": outcome, "purchase_request": self._fresh(pr)})

    @action(detail=True, methods=["POST"])
    def cancel(self, request, pk=None):
        pr = self.get_object()
        try:
            pr = cancel_purchase_request(pr, request.user, reason=request.data.get("reason", ""))
        except DOMAIN_ERRORS as e:
            return domain_error_response(e)
        return Response(self._fresh(pr))

    @action(detail=False, methods=['get'])
    def my_requests(self, request):
        """Get current user's purchase requests"""
        queryset = self.get_queryset().filter(requested_by=request.user)
        serializer = self.get_serializer(queryset, many=True)
        return Response(serializer.data)

    @action(detail=False, methods=['get'], url_path='pending-approval')
    def pending_approval(self, request):
        ids = pending_purchase_requests(request.user).values_list('id', flat=True)
        queryset = self.get_queryset().filter(id__in=list(ids)).order_by('created_at')
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(queryset, many=True).data)
