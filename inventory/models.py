# inventory/models.py

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _
from solo.models import SingletonModel

from core.managers import AllObjectsManager
from core.models import BaseModel, TimeStampedModel

from inventory.managers import (
    InventoryItemManager,
    LowStockAlertManager,
    StockTransactionManager,
)

logger = logging.getLogger(__name__)

# ============================================================
# Constants
# ============================================================
DECIMAL_ZERO = Decimal("0.000")
DECIMAL_ONE = Decimal("1.000")
QTY_PLACES = Decimal("0.001")
MONEY_PLACES = Decimal("0.001")


# ============================================================
# Inventory Settings
# ============================================================
class InventorySettings(SingletonModel):
    class OverCountPolicy(models.TextChoices):
        REJECT = "reject", _("Reject the receipt")
        CLAMP = "clamp", _("Clamp missing quantity at zero")

    class AutoReorderStatus(models.TextChoices):
        DRAFT = "draft", _("Create as draft")
        ORDERED = "ordered", _("Place immediately")

    allow_negative_stock = models.BooleanField(
        default=False,
        verbose_name=_("Allow negative stock"),
        help_text=_("When enabled, any adjustment may take stock below zero (backorders)."),
    )

    over_count_policy = models.CharField(
        max_length=10,
        choices=OverCountPolicy.choices,
        default=OverCountPolicy.REJECT,
        verbose_name=_("Over-count policy"),
        help_text=_("What to do when received + rejected exceeds the ordered quantity."),
    )

    auto_reorder_enabled = models.BooleanField(default=True, verbose_name=_("Auto reorder enabled"))
    auto_reorder_status = models.CharField(
        max_length=10,
        choices=AutoReorderStatus.choices,
        default=AutoReorderStatus.DRAFT,
        verbose_name=_("Status of auto-generated orders"),
    )

    class Meta:
        verbose_name = _("Inventory settings")

    def __str__(self) -> str:
        return "Inventory settings"


# ============================================================
# Inventory Items
# ============================================================
class InventoryItem(BaseModel):
    class Unit(models.TextChoices):
        KG = "kg", _("Kilogram")
        LITER = "liter", _("Liter")
        PIECE = "piece", _("Piece")
        BOTTLE = "bottle", _("Bottle")
        BOX = "box", _("Box")
        PACK = "pack", _("Pack")
        CAN = "can", _("Can")
        GRAM = "gram", _("Gram")
        ML = "ml", _("Millilitre")
        OTHER = "other", _("Other")

    name = models.CharField(max_length=255, verbose_name=_("Name"))
    sku = models.CharField(max_length=50, verbose_name=_("SKU"))

    department = models.ForeignKey(
        "catalog.Department",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="items",
        verbose_name=_("Department"),
    )
    category = models.ForeignKey(
        "catalog.Category",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="items",
        verbose_name=_("Category"),
    )

    unit = models.CharField(max_length=10, choices=Unit.choices, default=Unit.PIECE, verbose_name=_("Base unit"))

    # Written only by inventory.services.adjust_stock
    current_stock = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=DECIMAL_ZERO,
        editable=False,
        verbose_name=_("Current stock"),
    )
    min_stock_level = models.DecimalField(max_digits=12, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Minimum level"))
    max_stock_level = models.DecimalField(max_digits=12, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Maximum level"))
    reorder_point = models.DecimalField(max_digits=12, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Reorder point"))

    unit_cost = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=DECIMAL_ZERO,
        verbose_name=_("Unit cost"),
        help_text=_("Weighted average cost, updated on each receipt."),
    )
    last_purchase_price = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        null=True,
        blank=True,
        verbose_name=_("Last purchase price"),
    )

    purchase_unit = models.CharField(
        max_length=10,
        choices=Unit.choices,
        blank=True,
        verbose_name=_("Purchase unit"),
    )
    conversion_factor = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        null=True,
        blank=True,
        verbose_name=_("Conversion factor"),
        help_text=_("How many base units one purchase unit holds."),
    )

    preferred_supplier = models.ForeignKey(
        "catalog.Supplier",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="preferred_items",
        verbose_name=_("Preferred supplier"),
    )
    location = models.CharField(max_length=120, blank=True, verbose_name=_("Storage location"))
    expiry_date = models.DateField(null=True, blank=True, verbose_name=_("Expiry date"))
    last_restocked_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Last restocked at"))
    is_active = models.BooleanField(default=True, verbose_name=_("Active"))

    objects = InventoryItemManager()
    all_objects = AllObjectsManager()

    class Meta:
        verbose_name = _("Inventory item")
        verbose_name_plural = _("Inventory items")
        ordering = ("name",)
        indexes = [
            models.Index(fields=["is_deleted", "is_active"], name="item_del_active_idx"),
            models.Index(fields=["category"], name="item_category_idx"),
            models.Index(fields=["department"], name="item_department_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["sku"],
                condition=Q(is_deleted=False),
                name="uniq_item_sku_visible",
            ),
            models.CheckConstraint(condition=Q(min_stock_level__gte=0), name="item_min_level_non_negative"),
            models.CheckConstraint(condition=Q(max_stock_level__gte=0), name="item_max_level_non_negative"),
            models.CheckConstraint(condition=Q(reorder_point__gte=0), name="item_reorder_point_non_negative"),
            models.CheckConstraint(condition=Q(unit_cost__gte=0), name="item_unit_cost_non_negative"),
            models.CheckConstraint(
                condition=Q(conversion_factor__isnull=True) | Q(conversion_factor__gt=0),
                name="item_conversion_factor_positive_when_set",
            ),
        ]

    def __str__(self) -> str:
        return f"[{self.sku}] {self.name}"

    # -------------------------
    # Derived values
    # -------------------------
    @property
    def total_value(self) -> Decimal:
        return (self.current_stock or DECIMAL_ZERO) * (self.unit_cost or DECIMAL_ZERO)

    @property
    def is_below_reorder_point(self) -> bool:
        return (self.current_stock or DECIMAL_ZERO) <= (self.reorder_point or DECIMAL_ZERO)

    # -------------------------
    # Validation (domain rules)
    # -------------------------
    def clean(self):
        super().clean()
        errors: dict[str, str] = {}

        for field_name in ("min_stock_level", "max_stock_level", "reorder_point", "unit_cost"):
            value = getattr(self, field_name)
            if value is not None and value < 0:
                errors[field_name] = _("Value cannot be negative.")

        if self.purchase_unit and (self.conversion_factor is None or self.conversion_factor <= 0):
            errors["conversion_factor"] = _("A positive conversion factor is required for the purchase unit.")
        if self.conversion_factor is not None and not self.purchase_unit:
            errors["purchase_unit"] = _("A conversion factor needs a purchase unit.")

        if errors:
            raise ValidationError(errors)

        # Threshold ordering is advisory only.
        reorder_point = self.reorder_point or DECIMAL_ZERO
        min_level = self.min_stock_level or DECIMAL_ZERO
        max_level = self.max_stock_level or DECIMAL_ZERO
        if not (reorder_point <= min_level <= max_level):
            logger.warning(
                "Item %s thresholds out of order: reorder_point=%s min=%s max=%s",
                self.sku,
                self.reorder_point,
                self.min_stock_level,
                self.max_stock_level,
            )

    # -------------------------
    # Unit conversions
    # -------------------------
    def to_base(self, qty: Decimal, unit: Optional[str] = None) -> Decimal:
        qty = Decimal(qty) if qty is not None else DECIMAL_ZERO
        if not unit or unit == self.unit:
            return qty.quantize(QTY_PLACES)
        if unit == self.purchase_unit and self.conversion_factor:
            return (qty * self.conversion_factor).quantize(QTY_PLACES)
        raise ValidationError({"unit": _("Unit '%(unit)s' is not configured for this item.") % {"unit": unit}})


# ============================================================
# Stock transaction journal
# ============================================================
class StockTransaction(TimeStampedModel):
    """
    One row per stock adjustment. Append-only; the sum of quantities for an
    item equals its current stock.
    """

    class Type(models.TextChoices):
        PURCHASE = "purchase", _("Purchase receipt")
        USAGE = "usage", _("Usage")
        WASTE = "waste", _("Waste / spoilage")
        ADJUSTMENT = "adjustment", _("Adjustment")
        TRANSFER_IN = "transfer_in", _("Transfer in")
        TRANSFER_OUT = "transfer_out", _("Transfer out")
        SALES_DEDUCTION = "sales_deduction", _("Sales deduction")

    item = models.ForeignKey(
        InventoryItem,
        on_delete=models.PROTECT,
        related_name="transactions",
        verbose_name=_("Item"),
    )
    transaction_type = models.CharField(max_length=20, choices=Type.choices, verbose_name=_("Type"))
    quantity = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_("Quantity (signed)"))
    previous_stock = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_("Stock before"))
    new_stock = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_("Stock after"))
    unit_cost = models.DecimalField(max_digits=12, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Unit cost"))
    total_cost = models.DecimalField(max_digits=14, decimal_places=3, default=DECIMAL_ZERO, verbose_name=_("Total cost"))
    reason = models.CharField(max_length=255, verbose_name=_("Reason"))
    reference = models.CharField(max_length=100, blank=True, verbose_name=_("Reference"))
    performed_by = models.CharField(max_length=150, blank=True, verbose_name=_("Performed by"))
    idempotency_key = models.CharField(
        max_length=120,
        null=True,
        blank=True,
        unique=True,
        verbose_name=_("Idempotency key"),
    )

    objects = StockTransactionManager()

    class Meta:
        verbose_name = _("Stock transaction")
        verbose_name_plural = _("Stock transactions")
        ordering = ("-created_at", "-id")
        indexes = [
            models.Index(fields=["item", "created_at"], name="stocktxn_item_created_idx"),
            models.Index(fields=["transaction_type", "created_at"], name="stocktxn_type_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.item_id} {self.transaction_type} {self.quantity:+}"


# ============================================================
# Low stock alerts
# ============================================================
class LowStockAlert(TimeStampedModel):
    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        RESOLVED = "resolved", _("Resolved")

    item = models.ForeignKey(
        InventoryItem,
        on_delete=models.CASCADE,
        related_name="low_stock_alerts",
        verbose_name=_("Item"),
    )
    item_name = models.CharField(max_length=255, verbose_name=_("Item name"))
    current_stock = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_("Stock when raised"))
    min_stock_level = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_("Minimum level"))
    reorder_point = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_("Reorder point"))
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE, verbose_name=_("Status"))
    resolved_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Resolved at"))

    objects = LowStockAlertManager()

    class Meta:
        verbose_name = _("Low stock alert")
        verbose_name_plural = _("Low stock alerts")
        ordering = ("-created_at",)
        constraints = [
            models.UniqueConstraint(
                fields=["item"],
                condition=Q(status="active"),
                name="uniq_active_low_stock_alert_per_item",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.item_name} ({self.status})"
