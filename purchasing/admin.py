# purchasing/admin.py
from django.contrib import admin

from .models import PurchaseOrder, PurchaseOrderLine, ReceiptIntent


class PurchaseOrderLineInline(admin.TabularInline):
    model = PurchaseOrderLine
    extra = 0
    fields = ("position", "item", "name", "unit", "quantity", "unit_cost", "total_cost")
    readonly_fields = ("name", "unit", "total_cost")


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = (
        "po_number",
        "supplier_name",
        "status",
        "total_amount",
        "expected_delivery_date",
        "is_auto_generated",
        "created_at",
    )
    list_filter = ("status", "is_auto_generated")
    search_fields = ("po_number", "supplier_name")
    readonly_fields = (
        "po_number",
        "status",
        "total_amount",
        "received_details",
        "ordered_at",
        "received_at",
        "cancelled_at",
    )
    inlines = [PurchaseOrderLineInline]

    # Status changes go through purchasing.services
    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ReceiptIntent)
class ReceiptIntentAdmin(admin.ModelAdmin):
    list_display = ("purchase_order", "idempotency_key", "created_by", "created_at")
    readonly_fields = ("purchase_order", "idempotency_key", "payload", "created_by")
