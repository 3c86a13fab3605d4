# purchasing/apps.py
from django.apps import AppConfig


class PurchasingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "purchasing"
    verbose_name = "Purchasing"

    def ready(self):
        """
        Register purchasing domain event handlers.

        The StockAdjusted handler drives auto reorder; it must be imported at
        startup or no orders are ever raised.
        """
        import purchasing.handlers  # noqa: F401
