# inventory/apps.py
from django.apps import AppConfig


class InventoryConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "inventory"
    verbose_name = "Inventory"

    def ready(self):
        # registers StockAdjusted handlers (low stock alerts)
        from . import handlers  # noqa: F401
