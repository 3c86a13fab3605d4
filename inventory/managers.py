# inventory/managers.py
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F, Q

from core.managers import SoftDeleteQuerySet

if TYPE_CHECKING:
    from .models import InventoryItem, LowStockAlert, StockTransaction


# ============================================================
# InventoryItem Manager
# ============================================================
class InventoryItemQuerySet(SoftDeleteQuerySet, models.QuerySet["InventoryItem"]):
    def below_reorder_point(self) -> "InventoryItemQuerySet":
        return self.active().filter(current_stock__lte=F("reorder_point"))

    def with_value(self) -> "InventoryItemQuerySet":
        return self.annotate(stock_value=F("current_stock") * F("unit_cost"))

    def supplied_by(self, supplier) -> "InventoryItemQuerySet":
        return self.visible().filter(preferred_supplier=supplier)

    def search(self, q: str) -> "InventoryItemQuerySet":
        q = (q or "").strip()
        if not q:
            return self
        return self.filter(Q(name__icontains=q) | Q(sku__icontains=q))


class InventoryItemManager(models.Manager.from_queryset(InventoryItemQuerySet)):  # type: ignore[misc]
    def get_queryset(self) -> InventoryItemQuerySet:
        return super().get_queryset().visible()


# ============================================================
# StockTransaction Manager
# ============================================================
class StockTransactionQuerySet(models.QuerySet["StockTransaction"]):
    def for_item(self, item) -> "StockTransactionQuerySet":
        return self.filter(item=item)

    def of_type(self, *types: str) -> "StockTransactionQuerySet":
        return self.filter(transaction_type__in=types)

    def between(self, start: datetime, end: datetime) -> "StockTransactionQuerySet":
        return self.filter(created_at__gte=start, created_at__lte=end)


class StockTransactionManager(models.Manager.from_queryset(StockTransactionQuerySet)):  # type: ignore[misc]
    pass


# ============================================================
# LowStockAlert Manager
# ============================================================
class LowStockAlertQuerySet(models.QuerySet["LowStockAlert"]):
    def active(self) -> "LowStockAlertQuerySet":
        return self.filter(status="active")

    def resolved(self) -> "LowStockAlertQuerySet":
        return self.filter(status="resolved")


class LowStockAlertManager(models.Manager.from_queryset(LowStockAlertQuerySet)):  # type: ignore[misc]
    pass
