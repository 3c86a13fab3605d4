# inventory/admin.py
from django.contrib import admin
from import_export.admin import ImportExportModelAdmin
from solo.admin import SingletonModelAdmin

from .models import InventoryItem, InventorySettings, LowStockAlert, StockTransaction
from .resources import InventoryItemResource


@admin.register(InventorySettings)
class InventorySettingsAdmin(SingletonModelAdmin):
    pass


@admin.register(InventoryItem)
class InventoryItemAdmin(ImportExportModelAdmin):
    resource_classes = [InventoryItemResource]
    list_display = (
        "sku",
        "name",
        "department",
        "category",
        "current_stock",
        "reorder_point",
        "unit",
        "unit_cost",
        "preferred_supplier",
        "is_active",
    )
    list_filter = ("is_active", "department", "category", "unit")
    search_fields = ("sku", "name")
    readonly_fields = ("current_stock", "last_restocked_at", "last_purchase_price", "public_id")


@admin.register(StockTransaction)
class StockTransactionAdmin(admin.ModelAdmin):
    list_display = ("created_at", "item", "transaction_type", "quantity", "new_stock", "reason", "performed_by")
    list_filter = ("transaction_type",)
    search_fields = ("item__sku", "item__name", "reason", "reference")

    # The journal is append-only
    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(LowStockAlert)
class LowStockAlertAdmin(admin.ModelAdmin):
    list_display = ("item_name", "current_stock", "reorder_point", "status", "created_at", "resolved_at")
    list_filter = ("status",)
