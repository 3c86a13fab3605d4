# inventory/services.py

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.translation import gettext as _

from catalog.models import Category, Department, Supplier
from core.domain.dispatcher import emit
from core.exceptions import (
    DuplicateAdjustment,
    ItemNotFound,
    NegativeStockRejected,
    ReferenceInUse,
    ValidationFailed,
)
from core.models import AuditLog
from core.services.audit import log_event
from core.services.validation import full_clean_or_fail

from .domain import StockAdjusted
from .models import (
    DECIMAL_ZERO,
    MONEY_PLACES,
    QTY_PLACES,
    InventoryItem,
    InventorySettings,
    LowStockAlert,
    StockTransaction,
)

logger = logging.getLogger(__name__)

# Transaction types that may only move stock in one direction.
OUTBOUND_TYPES = (
    StockTransaction.Type.USAGE,
    StockTransaction.Type.WASTE,
    StockTransaction.Type.TRANSFER_OUT,
    StockTransaction.Type.SALES_DEDUCTION,
)
INBOUND_TYPES = (
    StockTransaction.Type.PURCHASE,
    StockTransaction.Type.TRANSFER_IN,
)

# nullable item fields an ItemPatch may empty
CLEARABLE_ITEM_FIELDS = frozenset(
    {"department_id", "category_id", "preferred_supplier_id", "conversion_factor", "expiry_date"}
)


# ============================================================
# Input structures
# ============================================================

@dataclass
class ItemSpec:
    """Everything needed to register a new inventory item."""
    name: str
    sku: str
    unit: str = InventoryItem.Unit.PIECE
    department_id: Optional[int] = None
    category_id: Optional[int] = None
    min_stock_level: Decimal = DECIMAL_ZERO
    max_stock_level: Decimal = DECIMAL_ZERO
    reorder_point: Decimal = DECIMAL_ZERO
    unit_cost: Decimal = DECIMAL_ZERO
    purchase_unit: str = ""
    conversion_factor: Optional[Decimal] = None
    preferred_supplier_id: Optional[int] = None
    location: str = ""
    expiry_date: Optional[date] = None
    opening_stock: Decimal = DECIMAL_ZERO


@dataclass
class ItemPatch:
    """
    Named optional changes to an item. ``None`` leaves a field untouched;
    list a field in ``clear`` to empty it (see CLEARABLE_ITEM_FIELDS).

    Stock is deliberately absent: it only moves through adjust_stock().
    """
    name: Optional[str] = None
    sku: Optional[str] = None
    unit: Optional[str] = None
    department_id: Optional[int] = None
    category_id: Optional[int] = None
    min_stock_level: Optional[Decimal] = None
    max_stock_level: Optional[Decimal] = None
    reorder_point: Optional[Decimal] = None
    unit_cost: Optional[Decimal] = None
    purchase_unit: Optional[str] = None
    conversion_factor: Optional[Decimal] = None
    preferred_supplier_id: Optional[int] = None
    location: Optional[str] = None
    expiry_date: Optional[date] = None
    is_active: Optional[bool] = None
    clear: tuple[str, ...] = ()

    def changes(self) -> dict[str, Any]:
        values = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "clear" and getattr(self, f.name) is not None
        }
        errors = {}
        for name in self.clear:
            if name not in CLEARABLE_ITEM_FIELDS:
                errors[name] = [_("This field cannot be cleared.")]
            elif name in values:
                errors[name] = [_("A field cannot be set and cleared at once.")]
            else:
                values[name] = None
        if errors:
            raise ValidationFailed(errors)
        return values


# ============================================================
# Helpers
# ============================================================

def to_decimal(value: Any, *, field: str) -> Decimal:
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationFailed({field: [_("Enter a number.")]}) from None
    if not value.is_finite():
        raise ValidationFailed({field: [_("Enter a number.")]})
    return value


def get_item(item_id: Any) -> InventoryItem:
    try:
        return InventoryItem.objects.select_related("preferred_supplier").get(pk=item_id)
    except (InventoryItem.DoesNotExist, ValueError, TypeError):
        raise ItemNotFound(item_id) from None


def _lock_item(item_id: Any) -> InventoryItem:
    try:
        return InventoryItem.objects.select_for_update().get(pk=item_id)
    except (InventoryItem.DoesNotExist, ValueError, TypeError):
        raise ItemNotFound(item_id) from None


def _resolve_references(values: dict[str, Any]) -> dict[str, str]:
    """Check that referenced catalog rows exist (soft-deleted rows do not count)."""
    errors: dict[str, str] = {}
    lookups = (
        ("department_id", Department),
        ("category_id", Category),
        ("preferred_supplier_id", Supplier),
    )
    for key, model in lookups:
        ref = values.get(key)
        if ref is not None and not model.objects.filter(pk=ref).exists():
            errors[key.removesuffix("_id")] = _("%(model)s %(id)s does not exist.") % {
                "model": model._meta.verbose_name,
                "id": ref,
            }
    return errors


def _sku_taken(sku: str, *, exclude_pk: Optional[int] = None) -> bool:
    qs = InventoryItem.objects.filter(sku=sku)
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    return qs.exists()


# ============================================================
# Item lifecycle
# ============================================================

@transaction.atomic
def create_item(spec: ItemSpec, *, actor: str = "") -> InventoryItem:
    """
    Register a new item. A positive opening stock is booked through the
    ledger so the journal always explains the current level.
    """
    sku = (spec.sku or "").strip()
    opening_stock = to_decimal(spec.opening_stock, field="opening_stock")

    errors = _resolve_references(
        {
            "department_id": spec.department_id,
            "category_id": spec.category_id,
            "preferred_supplier_id": spec.preferred_supplier_id,
        }
    )
    if sku and _sku_taken(sku):
        errors["sku"] = _("An item with this SKU already exists.")
    if opening_stock < 0:
        errors["opening_stock"] = _("Opening stock cannot be negative.")
    if errors:
        raise ValidationFailed(errors)

    item = InventoryItem(
        name=(spec.name or "").strip(),
        sku=sku,
        unit=spec.unit,
        department_id=spec.department_id,
        category_id=spec.category_id,
        min_stock_level=to_decimal(spec.min_stock_level, field="min_stock_level"),
        max_stock_level=to_decimal(spec.max_stock_level, field="max_stock_level"),
        reorder_point=to_decimal(spec.reorder_point, field="reorder_point"),
        unit_cost=to_decimal(spec.unit_cost, field="unit_cost"),
        purchase_unit=spec.purchase_unit or "",
        conversion_factor=spec.conversion_factor,
        preferred_supplier_id=spec.preferred_supplier_id,
        location=spec.location,
        expiry_date=spec.expiry_date,
        created_by=actor,
    )
    full_clean_or_fail(item, exclude=["department", "category", "preferred_supplier"])
    item.save()

    log_event(
        action=AuditLog.Action.CREATE,
        message=_("Inventory item created."),
        actor=actor,
        target=item,
        extra={"sku": item.sku},
    )

    if opening_stock > 0:
        adjust_stock(
            item.pk,
            opening_stock,
            _("Opening balance"),
            transaction_type=StockTransaction.Type.ADJUSTMENT,
            performed_by=actor,
        )
        item.refresh_from_db()

    return item


@transaction.atomic
def update_item(item_id: Any, patch: ItemPatch, *, actor: str = "") -> InventoryItem:
    item = _lock_item(item_id)
    changes = patch.changes()
    if not changes:
        return item

    errors = _resolve_references(changes)
    if "sku" in changes:
        changes["sku"] = changes["sku"].strip()
        if _sku_taken(changes["sku"], exclude_pk=item.pk):
            errors["sku"] = _("An item with this SKU already exists.")
    if errors:
        raise ValidationFailed(errors)

    for name, value in changes.items():
        setattr(item, name, value)
    item.updated_by = actor
    full_clean_or_fail(item, exclude=["department", "category", "preferred_supplier"])
    item.save()

    log_event(
        action=AuditLog.Action.UPDATE,
        message=_("Inventory item updated."),
        actor=actor,
        target=item,
        extra={"fields": sorted(changes)},
    )
    return item


def deactivate_item(item_id: Any, *, actor: str = "") -> InventoryItem:
    return update_item(item_id, ItemPatch(is_active=False), actor=actor)


@transaction.atomic
def delete_item(item_id: Any, *, actor: str = "") -> None:
    """
    Soft-delete an item that was never used.

    Items referenced by a purchase order line or a stock transaction must be
    deactivated instead so the history keeps pointing at a real row.
    """
    item = _lock_item(item_id)

    references = {
        "purchase order lines": item.purchase_order_lines.count(),
        "stock transactions": item.transactions.count(),
    }
    references = {name: count for name, count in references.items() if count}
    if references:
        raise ReferenceInUse(f"Item '{item.sku}'", references)

    item.soft_delete(actor=actor)
    log_event(
        action=AuditLog.Action.DELETE,
        message=_("Inventory item deleted."),
        actor=actor,
        target=item,
        extra={"sku": item.sku},
    )


# ============================================================
# Stock ledger
# ============================================================

def _validate_direction(transaction_type: str, delta: Decimal) -> None:
    if transaction_type not in StockTransaction.Type.values:
        raise ValidationFailed({"transaction_type": [_("Unknown transaction type.")]})
    if transaction_type in OUTBOUND_TYPES and delta > 0:
        raise ValidationFailed({"delta": [_("This transaction type must reduce stock.")]})
    if transaction_type in INBOUND_TYPES and delta < 0:
        raise ValidationFailed({"delta": [_("This transaction type must increase stock.")]})


@transaction.atomic
def adjust_stock(
    item_id: Any,
    delta: Any,
    reason: str,
    *,
    transaction_type: str = StockTransaction.Type.ADJUSTMENT,
    reference: str = "",
    performed_by: str = "",
    idempotency_key: Optional[str] = None,
    allow_negative: bool = False,
    unit_cost: Optional[Decimal] = None,
) -> Decimal:
    """
    Atomically change an item's stock by ``delta`` and return the new level.

    - The item row is locked for the duration of the change.
    - A repeated ``idempotency_key`` raises DuplicateAdjustment and changes nothing.
    - Going below zero needs ``allow_negative`` or the global backorder setting.
    - StockAdjusted is emitted before returning; a failing critical handler
      (auto-reorder) rolls the adjustment back.
    """
    delta = to_decimal(delta, field="delta").quantize(QTY_PLACES)
    if delta == 0:
        raise ValidationFailed({"delta": [_("Adjustment quantity cannot be zero.")]})
    if not (reason or "").strip():
        raise ValidationFailed({"reason": [_("A reason is required.")]})
    _validate_direction(transaction_type, delta)

    item = _lock_item(item_id)

    if idempotency_key and StockTransaction.objects.filter(idempotency_key=idempotency_key).exists():
        raise DuplicateAdjustment(idempotency_key)

    previous_stock = item.current_stock
    new_stock = previous_stock + delta

    if new_stock < 0 and not allow_negative:
        settings = InventorySettings.get_solo()
        if not settings.allow_negative_stock:
            raise NegativeStockRejected(item.pk, previous_stock, delta)

    updates: dict[str, Any] = {"current_stock": F("current_stock") + delta}
    if transaction_type == StockTransaction.Type.PURCHASE:
        updates["last_restocked_at"] = timezone.now()
    InventoryItem.objects.filter(pk=item.pk).update(**updates)
    item.refresh_from_db(fields=["current_stock", "last_restocked_at"])

    cost = item.unit_cost if unit_cost is None else unit_cost
    try:
        with transaction.atomic():
            entry = StockTransaction.objects.create(
                item=item,
                transaction_type=transaction_type,
                quantity=delta,
                previous_stock=previous_stock,
                new_stock=item.current_stock,
                unit_cost=cost,
                total_cost=(abs(delta) * cost).quantize(MONEY_PLACES),
                reason=reason.strip(),
                reference=reference,
                performed_by=performed_by,
                idempotency_key=idempotency_key or None,
            )
    except IntegrityError:
        # Another writer recorded the same key between our check and insert.
        raise DuplicateAdjustment(idempotency_key) from None

    logger.info(
        "Stock %s on %s: %s -> %s (%s)",
        transaction_type,
        item.sku,
        previous_stock,
        item.current_stock,
        reason,
    )
    log_event(
        action=AuditLog.Action.STOCK_ADJUSTMENT,
        message=reason.strip(),
        actor=performed_by,
        target=item,
        extra={
            "transaction_id": entry.pk,
            "type": str(transaction_type),
            "delta": str(delta),
            "previous_stock": str(previous_stock),
            "new_stock": str(item.current_stock),
            "reference": reference,
        },
    )

    emit(
        StockAdjusted(
            item_id=item.pk,
            delta=delta,
            previous_stock=previous_stock,
            new_stock=item.current_stock,
            transaction_type=str(transaction_type),
            reason=reason.strip(),
            idempotency_key=idempotency_key,
        )
    )

    return item.current_stock


@transaction.atomic
def apply_receipt_cost(item_id: Any, quantity: Decimal, unit_cost: Decimal) -> InventoryItem:
    """
    Weighted average cost update for incoming stock.
    Must run before the matching stock increase is booked.
    """
    item = _lock_item(item_id)

    incoming_qty = to_decimal(quantity, field="quantity")
    incoming_cost = to_decimal(unit_cost, field="unit_cost")
    if incoming_qty <= 0:
        return item

    current_qty = max(item.current_stock, DECIMAL_ZERO)
    current_avg = item.unit_cost or DECIMAL_ZERO

    if current_qty <= 0:
        new_avg = incoming_cost
    else:
        current_value = current_qty * current_avg
        incoming_value = incoming_qty * incoming_cost
        new_avg = (current_value + incoming_value) / (current_qty + incoming_qty)

    item.unit_cost = new_avg.quantize(MONEY_PLACES)
    item.last_purchase_price = incoming_cost
    item.save(update_fields=["unit_cost", "last_purchase_price", "updated_at"])
    return item


# ============================================================
# Low stock alerts
# ============================================================

def open_low_stock_alert(item: InventoryItem) -> tuple[LowStockAlert, bool]:
    """
    Return the item's active alert, creating it if none is open.
    The boolean is True when a new alert was created.
    """
    alert = LowStockAlert.objects.active().filter(item=item).first()
    if alert is not None:
        if alert.current_stock != item.current_stock:
            alert.current_stock = item.current_stock
            alert.save(update_fields=["current_stock", "updated_at"])
        return alert, False

    alert = LowStockAlert.objects.create(
        item=item,
        item_name=item.name,
        current_stock=item.current_stock,
        min_stock_level=item.min_stock_level,
        reorder_point=item.reorder_point,
    )
    logger.warning("Low stock on %s: %s (reorder point %s)", item.sku, item.current_stock, item.reorder_point)
    return alert, True


def resolve_open_alerts(item: InventoryItem) -> int:
    return LowStockAlert.objects.active().filter(item=item).update(
        status=LowStockAlert.Status.RESOLVED,
        resolved_at=timezone.now(),
        updated_at=timezone.now(),
    )


@transaction.atomic
def resolve_low_stock_alert(alert_id: Any, *, actor: str = "") -> LowStockAlert:
    alert = LowStockAlert.objects.select_for_update().filter(pk=alert_id).first()
    if alert is None:
        raise ValidationFailed({"alert": [_("Alert not found.")]})

    if alert.status != LowStockAlert.Status.RESOLVED:
        alert.status = LowStockAlert.Status.RESOLVED
        alert.resolved_at = timezone.now()
        alert.save(update_fields=["status", "resolved_at", "updated_at"])
        log_event(
            action=AuditLog.Action.STATUS_CHANGE,
            message=_("Low stock alert resolved."),
            actor=actor,
            target=alert,
        )
    return alert
