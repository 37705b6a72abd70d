from decimal import Decimal

from django.db import transaction
from rest_framework import serializers

from approvals.serializers import ApprovalWorkflowSerializer
from .models import (
    RFQ, RFQAuditLog, RFQItem, RFQVendor, RFQVendorPrice, PurchaseRequest, PurchaseRequestItem, Vendor,
)


class VendorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Vendor
        fields = [
            'id', 'code', 'company_name_en', 'company_name_ar', 'contact_person', 'phone', 'email',
            'default_currency', 'is_active', 'created_at', 'updated_at',
        ]


class RFQItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = RFQItem
        fields = ['id', 'item_number', 'description_en', 'description_ar', 'quantity', 'unit', 'specifications']


class RFQVendorPriceSerializer(serializers.ModelSerializer):
    class Meta:
        model = RFQVendorPrice
        fields = ['id', 'rfq_item', 'unit_price', 'total_price']


class RFQVendorSerializer(serializers.ModelSerializer):
    vendor_detail = VendorSerializer(source='vendor', read_only=True)
    prices = RFQVendorPriceSerializer(many=True, required=False)

    class Meta:
        model = RFQVendor
        fields = [
            'id', 'rfq', 'vendor', 'vendor_detail', 'quotation_received', 'quotation_received_at',
            'total_amount', 'currency', 'delivery_days', 'notes', 'is_recommended', 'is_selected', 'prices',
        ]
        read_only_fields = ['is_recommended', 'is_selected']

    def validate(self, attrs):
        rfq = attrs.get('rfq') or getattr(self.instance, 'rfq', None)
        if rfq is not None and rfq.is_closed:
            raise serializers.ValidationError(f"RFQ {rfq.code} is {rfq.status}; quotations are locked.")
        for price in attrs.get('prices') or []:
            if rfq is not None and price['rfq_item'].rfq_id != rfq.id:
                raise serializers.ValidationError({"prices": "Price lines must reference items of the same RFQ."})
        return attrs

    def _write_prices(self, quotation, prices):
        for p in prices:
            RFQVendorPrice.objects.update_or_create(
                rfq_vendor=quotation, rfq_item=p['rfq_item'],
                defaults={'unit_price': p['unit_price'], 'total_price': p['total_price']},
            )

    @transaction.atomic
    def create(self, validated_data):
        prices = validated_data.pop('prices', [])
        quotation = RFQVendor.objects.create(**validated_data)
        self._write_prices(quotation, prices)
        return quotation

    @transaction.atomic
    def update(self, instance, validated_data):
        prices = validated_data.pop('prices', None)
        instance = super().update(instance, validated_data)
        if prices is not None:
            self._write_prices(instance, prices)
        return instance


class RFQAuditLogSerializer(serializers.ModelSerializer):
    performed_by_username = serializers.CharField(source='performed_by.username', read_only=True, default=None)

    class Meta:
        model = RFQAuditLog
        fields = ['id', 'action', 'action_details', 'performed_by', 'performed_by_username', 'created_at']


class RFQSerializer(serializers.ModelSerializer):
    items = RFQItemSerializer(many=True, required=False)
    quotations = RFQVendorSerializer(many=True, read_only=True)
    status_label = serializers.SerializerMethodField()

    class Meta:
        model = RFQ
        fields = [
            'id', 'code', 'title_en', 'title_ar', 'description', 'status', 'status_label',
            'submission_deadline', 'recommended_vendor', 'recommendation_notes',
            'created_by', 'converted_to_pr_at', 'converted_to_pr_by',
            'created_at', 'updated_at', 'items', 'quotations',
        ]
        read_only_fields = [
            'code', 'created_by', 'converted_to_pr_at', 'converted_to_pr_by',
            'recommended_vendor', 'created_at', 'updated_at',
        ]

    def get_status_label(self, obj):
        return obj.get_status_display()

    def validate_status(self, value):
        # completion only happens through conversion to a PR
        if value == 'completed' and (self.instance is None or self.instance.status != 'completed'):
            raise serializers.ValidationError("An RFQ is completed by converting it to a purchase request.")
        if self.instance is not None and self.instance.is_closed and value != self.instance.status:
            raise serializers.ValidationError(f"RFQ is {self.instance.status}; its status cannot change.")
        return value

    @transaction.atomic
    def create(self, validated_data):
        items = validated_data.pop('items', [])
        rfq = RFQ.objects.create(**validated_data)
        for idx, item in enumerate(items, start=1):
            item.setdefault('item_number', idx)
            RFQItem.objects.create(rfq=rfq, **item)
        return rfq

    @transaction.atomic
    def update(self, instance, validated_data):
        items = validated_data.pop('items', None)
        instance = super().update(instance, validated_data)
        if items is not None:
            if instance.is_closed:
                raise serializers.ValidationError({"items": "Items of a closed RFQ cannot change."})
            instance.items.all().delete()
            for idx, item in enumerate(items, start=1):
                item.setdefault('item_number', idx)
                RFQItem.objects.create(rfq=instance, **item)
        return instance


class ConvertToPRSerializer(serializers.Serializer):
    vendor_id = serializers.IntegerField()
    justification = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class RecommendVendorSerializer(serializers.Serializer):
    vendor_id = serializers.IntegerField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PurchaseRequestItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = PurchaseRequestItem
        fields = [
            'id', 'rfq_item', 'item_number', 'description_en', 'description_ar',
            'quantity', 'unit', 'specifications', 'unit_price', 'total_price',
        ]
        read_only_fields = ['rfq_item']


class PurchaseRequestSerializer(serializers.ModelSerializer):
    items = PurchaseRequestItemSerializer(many=True, required=False)
    status_label = serializers.SerializerMethodField()
    vendor_detail = VendorSerializer(source='vendor', read_only=True)
    approval = serializers.SerializerMethodField()

    class Meta:
        model = PurchaseRequest
        fields = [
            'id', 'code', 'title_en', 'title_ar', 'description', 'status', 'status_label',
            'requested_by', 'created_by', 'rfq', 'vendor', 'vendor_detail', 'non_recommended_justification',
            'subtotal', 'total_amount', 'currency',
            'created_at', 'updated_at', 'submitted_at', 'approved_at', 'items', 'approval',
        ]
        read_only_fields = [
            'code', 'status', 'requested_by', 'created_by', 'rfq', 'non_recommended_justification',
            'subtotal', 'total_amount', 'created_at', 'updated_at', 'submitted_at', 'approved_at',
        ]

    def get_status_label(self, obj):
        return obj.get_status_display()

    def get_approval(self, obj):
        # uses the prefetched approvals when the view provides them
        wf = next(iter(sorted(obj.approvals.all(), key=lambda w: (w.created_at, w.id), reverse=True)), None)
        if not wf:
            return None
        return ApprovalWorkflowSerializer(wf, context=self.context).data

    @staticmethod
    def _write_items(pr, items):
        total = Decimal('0.00')
        for idx, item in enumerate(items, start=1):
            item.setdefault('item_number', idx)
            if not item.get('total_price'):
                item['total_price'] = (item.get('unit_price') or Decimal('0')) * item['quantity']
            total += item['total_price']
            PurchaseRequestItem.objects.create(purchase_request=pr, **item)
        pr.subtotal = pr.total_amount = total
        pr.save(update_fields=['subtotal', 'total_amount', 'updated_at'])

    @transaction.atomic
    def create(self, validated_data):
        items = validated_data.pop('items', [])
        pr = PurchaseRequest.objects.create(**validated_data)
        self._write_items(pr, items)
        return pr

    @transaction.atomic
    def update(self, instance, validated_data):
        if instance.status not in ('draft', 'rejected'):
            raise serializers.ValidationError(f"Purchase request is {instance.status}; it can no longer be edited.")
        items = validated_data.pop('items', None)
        instance = super().update(instance, validated_data)
        if items is not None:
            instance.items.all().delete()
            self._write_items(instance, items)
        return instance
