# purchasing/managers.py
from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

from core.managers import SoftDeleteQuerySet

if TYPE_CHECKING:
    from .models import PurchaseOrder


class PurchaseOrderQuerySet(SoftDeleteQuerySet, models.QuerySet["PurchaseOrder"]):
    def open(self) -> "PurchaseOrderQuerySet":
        return self.filter(status__in=("draft", "ordered"))

    def auto_generated(self) -> "PurchaseOrderQuerySet":
        return self.filter(is_auto_generated=True)

    def for_supplier(self, supplier) -> "PurchaseOrderQuerySet":
        return self.filter(supplier=supplier)

    def containing_item(self, item) -> "PurchaseOrderQuerySet":
        return self.filter(lines__item=item).distinct()

    def with_lines(self) -> "PurchaseOrderQuerySet":
        return self.select_related("supplier").prefetch_related("lines__item")


class PurchaseOrderManager(models.Manager.from_queryset(PurchaseOrderQuerySet)):  # type: ignore[misc]
    def get_queryset(self) -> PurchaseOrderQuerySet:
        return super().get_queryset().visible()
