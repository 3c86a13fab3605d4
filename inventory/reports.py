# inventory/reports.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from django.db.models import Sum

from .models import DECIMAL_ZERO, InventoryItem, StockTransaction

UNCATEGORIZED = "Uncategorized"


@dataclass
class InventoryValueReport:
    total_value: Decimal = DECIMAL_ZERO
    item_count: int = 0
    category_breakdown: dict[str, Decimal] = field(default_factory=dict)


@dataclass
class UsageRow:
    item_id: int
    item_name: str
    total_usage: Decimal
    total_cost: Decimal


def inventory_value_report() -> InventoryValueReport:
    """Stock value of active items, in total and per category."""
    report = InventoryValueReport()

    for item in InventoryItem.objects.active().select_related("category"):
        value = item.total_value
        label = item.category.label if item.category_id else UNCATEGORIZED
        report.total_value += value
        report.item_count += 1
        report.category_breakdown[label] = report.category_breakdown.get(label, DECIMAL_ZERO) + value

    return report


def inventory_usage_report(start: datetime, end: datetime) -> list[UsageRow]:
    """
    Consumption per item between ``start`` and ``end`` (inclusive),
    largest usage first.
    """
    rows = (
        StockTransaction.objects.of_type(StockTransaction.Type.USAGE)
        .between(start, end)
        .values("item_id", "item__name")
        .annotate(quantity=Sum("quantity"), cost=Sum("total_cost"))
    )

    usage = [
        UsageRow(
            item_id=row["item_id"],
            item_name=row["item__name"],
            total_usage=-(row["quantity"] or DECIMAL_ZERO),
            total_cost=row["cost"] or DECIMAL_ZERO,
        )
        for row in rows
    ]
    usage.sort(key=lambda row: row.total_usage, reverse=True)
    return usage


def low_stock_items():
    return InventoryItem.objects.below_reorder_point().select_related("preferred_supplier")
