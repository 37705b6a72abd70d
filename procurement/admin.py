from django.contrib import admin

from procurement.models import (
    RFQ, RFQAuditLog, RFQItem, RFQVendor, RFQVendorPrice, PurchaseRequest, PurchaseRequestItem, Vendor,
)


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ('code', 'company_name_en', 'email', 'default_currency', 'is_active')
    list_filter = ('is_active', 'default_currency')
    search_fields = ('code', 'company_name_en', 'company_name_ar')


class RFQItemInline(admin.TabularInline):
    model = RFQItem
    extra = 0


class RFQVendorInline(admin.TabularInline):
    model = RFQVendor
    extra = 0
    fields = ('vendor', 'quotation_received', 'total_amount', 'currency', 'is_recommended', 'is_selected')


@admin.register(RFQ)
class RFQAdmin(admin.ModelAdmin):
    list_display = ('code', 'title_en', 'status', 'recommended_vendor', 'converted_to_pr_at', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('code', 'title_en', 'title_ar')
    readonly_fields = ('code', 'converted_to_pr_at', 'converted_to_pr_by', 'created_at', 'updated_at')
    inlines = [RFQItemInline, RFQVendorInline]


@admin.register(RFQVendorPrice)
class RFQVendorPriceAdmin(admin.ModelAdmin):
    list_display = ('rfq_vendor', 'rfq_item', 'unit_price', 'total_price')


@admin.register(RFQAuditLog)
class RFQAuditLogAdmin(admin.ModelAdmin):
    list_display = ('rfq', 'action', 'performed_by', 'created_at')
    list_filter = ('action',)
    readonly_fields = ('rfq', 'action', 'action_details', 'performed_by', 'created_at')


class PurchaseRequestItemInline(admin.TabularInline):
    model = PurchaseRequestItem
    extra = 0
    readonly_fields = ('rfq_item',)


@admin.register(PurchaseRequest)
class PurchaseRequestAdmin(admin.ModelAdmin):
    list_display = ('code', 'title_en', 'status', 'vendor', 'total_amount', 'currency', 'requested_by', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('code', 'title_en', 'description')
    readonly_fields = ('code', 'created_at', 'updated_at', 'submitted_at', 'approved_at')
    inlines = [PurchaseRequestItemInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('code', 'title_en', 'title_ar', 'description')
        }),
        ('Request Details', {
            'fields': ('requested_by', 'status', 'rfq', 'vendor', 'non_recommended_justification')
        }),
        ('Amounts', {
            'fields': ('subtotal', 'total_amount', 'currency')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at', 'submitted_at', 'approved_at'),
            'classes': ('collapse',)
        }),
    )
