# purchasing/services.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

from django.db import transaction
from django.utils import timezone
from django.utils.translation import gettext as _

from catalog.models import Supplier
from core.domain.dispatcher import emit
from core.exceptions import (
    ConcurrentModification,
    InvalidStateTransition,
    PurchaseOrderNotFound,
    ValidationFailed,
)
from core.models import AuditLog
from core.services.audit import log_event
from core.services.numbering import generate_number_for_instance
from inventory.models import InventoryItem
from inventory.services import to_decimal

from .domain import PurchaseOrderCancelled, PurchaseOrderPlaced
from .models import PurchaseOrder, PurchaseOrderLine, ReceiptIntent

logger = logging.getLogger(__name__)


# ============================================================
# Input structures
# ============================================================

@dataclass
class LineInput:
    """
    One requested line. ``unit`` defaults to the item's base unit and
    ``unit_cost`` to the item's current unit cost.
    """
    item_id: int
    quantity: Decimal
    unit_cost: Optional[Decimal] = None
    unit: Optional[str] = None


@dataclass
class PurchaseOrderPatch:
    """
    Named optional changes to a PO. ``None`` leaves a field untouched;
    list ``supplier_id`` or ``expected_delivery_date`` in ``clear`` to empty it.
    """
    supplier_id: Optional[int] = None
    items: Optional[list[LineInput]] = None
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = None
    invoice_url: Optional[str] = None
    target_location_id: Optional[str] = None
    clear: tuple[str, ...] = ()


CLEARABLE_PO_FIELDS = frozenset({"supplier_id", "expected_delivery_date"})


@dataclass
class _ResolvedLine:
    item: InventoryItem
    quantity: Decimal
    unit_cost: Decimal
    unit: str


# ============================================================
# Audit helper
# ============================================================

def _log_po_action(po: PurchaseOrder, *, action: str, message: str, actor: str = "", **extra: Any) -> None:
    log_event(
        action=action,
        message=message,
        actor=actor,
        target=po,
        extra={
            "po_number": po.po_number,
            "status": str(po.status),
            "total_amount": str(po.total_amount),
            **extra,
        },
    )


# ============================================================
# Lookups
# ============================================================

def get_purchase_order(po_id: Any) -> PurchaseOrder:
    try:
        return PurchaseOrder.objects.with_lines().get(pk=po_id)
    except (PurchaseOrder.DoesNotExist, ValueError, TypeError):
        raise PurchaseOrderNotFound(po_id) from None


def lock_purchase_order(po_id: Any) -> PurchaseOrder:
    try:
        return PurchaseOrder.objects.select_for_update().get(pk=po_id)
    except (PurchaseOrder.DoesNotExist, ValueError, TypeError):
        raise PurchaseOrderNotFound(po_id) from None


# ============================================================
# Validation
# ============================================================

def _resolve_supplier(supplier_id: Any, errors: dict[str, list[str]]) -> Optional[Supplier]:
    if supplier_id is None:
        return None
    supplier = Supplier.objects.filter(pk=supplier_id).first()
    if supplier is None:
        errors["supplier_id"] = [_("Supplier %(id)s does not exist.") % {"id": supplier_id}]
    return supplier


def _resolve_lines(items: Sequence[LineInput], errors: dict[str, list[str]]) -> list[_ResolvedLine]:
    """
    Validate each requested line. Problems are keyed by the line's index
    (``items.<index>.<field>``).
    """
    resolved: list[_ResolvedLine] = []

    for index, line in enumerate(items):
        prefix = f"items.{index}"

        item = InventoryItem.objects.filter(pk=line.item_id).first()
        if item is None:
            errors[f"{prefix}.item_id"] = [_("Inventory item %(id)s does not exist.") % {"id": line.item_id}]
            continue

        try:
            quantity = to_decimal(line.quantity, field=f"{prefix}.quantity")
            unit_cost = to_decimal(
                item.unit_cost if line.unit_cost is None else line.unit_cost,
                field=f"{prefix}.unit_cost",
            )
        except ValidationFailed as exc:
            errors.update(exc.field_errors)
            continue

        if quantity <= 0:
            errors[f"{prefix}.quantity"] = [_("Quantity must be greater than zero.")]
        if unit_cost < 0:
            errors[f"{prefix}.unit_cost"] = [_("Unit cost cannot be negative.")]

        unit = line.unit or item.unit
        if unit not in (item.unit, item.purchase_unit or item.unit):
            errors[f"{prefix}.unit"] = [_("Unit '%(unit)s' is not configured for this item.") % {"unit": unit}]

        resolved.append(_ResolvedLine(item=item, quantity=quantity, unit_cost=unit_cost, unit=unit))

    return resolved


def _validate_placement(supplier: Optional[Supplier], line_count: int, errors: dict[str, list[str]]) -> None:
    """Rules an order must satisfy before it is sent to a supplier."""
    if "supplier_id" in errors:
        return
    if supplier is None:
        errors["supplier_id"] = [_("An ordered purchase order needs a supplier.")]
    elif not supplier.can_receive_orders:
        errors["supplier_id"] = [_("Supplier '%(name)s' is inactive.") % {"name": supplier.name}]
    if line_count == 0:
        errors["items"] = [_("An ordered purchase order needs at least one line.")]


def _write_lines(po: PurchaseOrder, lines: Sequence[_ResolvedLine]) -> None:
    po.lines.all().delete()
    for position, line in enumerate(lines):
        PurchaseOrderLine.objects.create(
            purchase_order=po,
            position=position,
            item=line.item,
            name=line.item.name,
            unit=line.unit,
            quantity=line.quantity,
            unit_cost=line.unit_cost,
        )


# ============================================================
# Public services
# ============================================================

@transaction.atomic
def create_purchase_order(
    *,
    supplier_id: Any,
    items: Sequence[LineInput],
    status: str = PurchaseOrder.Status.DRAFT,
    expected_delivery_date: Optional[date] = None,
    notes: str = "",
    invoice_url: str = "",
    target_location_id: str = "",
    created_by: str = "",
    is_auto_generated: bool = False,
) -> PurchaseOrder:
    """
    Create a PO as draft or ordered.

    Drafts only need well-formed lines and may leave the supplier empty.
    Orders created directly as ``ordered`` also need an active supplier and
    at least one line.
    """
    status = str(status)
    errors: dict[str, list[str]] = {}

    if status not in (PurchaseOrder.Status.DRAFT, PurchaseOrder.Status.ORDERED):
        raise ValidationFailed({"status": [_("A purchase order starts as draft or ordered.")]})

    supplier = _resolve_supplier(supplier_id, errors)
    lines = _resolve_lines(items, errors)
    if status == PurchaseOrder.Status.ORDERED:
        _validate_placement(supplier, len(items), errors)
    if errors:
        raise ValidationFailed(errors)

    po = PurchaseOrder(
        status=status,
        supplier=supplier,
        supplier_name=supplier.name if supplier else "",
        expected_delivery_date=expected_delivery_date,
        notes=notes,
        invoice_url=invoice_url,
        target_location_id=target_location_id,
        is_auto_generated=is_auto_generated,
        created_by=created_by,
    )
    if status == PurchaseOrder.Status.ORDERED:
        po.ordered_at = timezone.now()
    po.po_number = generate_number_for_instance(po, field_name="po_number")
    po.save()

    _write_lines(po, lines)
    po.recompute_totals()

    _log_po_action(
        po,
        action=AuditLog.Action.CREATE,
        message=_("Purchase order created."),
        actor=created_by,
        lines=len(lines),
        auto=is_auto_generated,
    )
    logger.info("Created %s purchase order %s (%d line(s))", status, po.po_number, len(lines))

    if status == PurchaseOrder.Status.ORDERED:
        emit(
            PurchaseOrderPlaced(
                purchase_order_id=po.pk,
                po_number=po.po_number,
                supplier_id=po.supplier_id,
                total_amount=po.total_amount,
            )
        )
    return po


@transaction.atomic
def place_purchase_order(po_id: Any, *, actor: str = "") -> PurchaseOrder:
    """draft → ordered."""
    po = lock_purchase_order(po_id)

    if not po.can_transition_to(PurchaseOrder.Status.ORDERED):
        raise InvalidStateTransition(po.status, "placed")

    errors: dict[str, list[str]] = {}
    supplier = Supplier.all_objects.filter(pk=po.supplier_id).first() if po.supplier_id else None
    if supplier is not None and supplier.is_deleted:
        errors["supplier_id"] = [_("Supplier '%(name)s' was deleted.") % {"name": supplier.name}]
    _validate_placement(supplier, po.lines.count(), errors)
    if errors:
        raise ValidationFailed(errors)

    po.status = PurchaseOrder.Status.ORDERED
    po.ordered_at = timezone.now()
    po.updated_by = actor
    po.recompute_totals(save=False)
    po.save(update_fields=["status", "ordered_at", "total_amount", "updated_by", "updated_at"])

    _log_po_action(po, action=AuditLog.Action.STATUS_CHANGE, message=_("Purchase order placed."), actor=actor)
    emit(
        PurchaseOrderPlaced(
            purchase_order_id=po.pk,
            po_number=po.po_number,
            supplier_id=po.supplier_id,
            total_amount=po.total_amount,
        )
    )
    return po


@transaction.atomic
def edit_purchase_order(po_id: Any, patch: PurchaseOrderPatch, *, actor: str = "") -> PurchaseOrder:
    """
    Change a draft or ordered PO. Replacing ``items`` rewrites all lines;
    the total is recomputed either way.
    """
    po = lock_purchase_order(po_id)

    if not po.is_editable:
        raise InvalidStateTransition(po.status, "edited")

    # a staged receipt was reconciled against the current lines
    if ReceiptIntent.objects.filter(purchase_order=po).exists():
        raise ConcurrentModification(
            _("Purchase order %(number)s has a receipt in progress.") % {"number": po.po_number}
        )

    errors: dict[str, list[str]] = {}

    for name in patch.clear:
        if name not in CLEARABLE_PO_FIELDS:
            errors[name] = [_("This field cannot be cleared.")]
        elif getattr(patch, name) is not None:
            errors[name] = [_("A field cannot be set and cleared at once.")]
    clear_supplier = "supplier_id" in patch.clear

    supplier = None if clear_supplier else po.supplier
    if patch.supplier_id is not None:
        supplier = _resolve_supplier(patch.supplier_id, errors)

    lines = None
    if patch.items is not None:
        lines = _resolve_lines(patch.items, errors)

    if po.status == PurchaseOrder.Status.ORDERED:
        line_count = len(patch.items) if patch.items is not None else po.lines.count()
        _validate_placement(supplier, line_count, errors)

    if errors:
        raise ValidationFailed(errors)

    changed: list[str] = []
    if patch.supplier_id is not None and supplier is not None and supplier.pk != po.supplier_id:
        po.supplier = supplier
        po.supplier_name = supplier.name
        changed.append("supplier")
    elif clear_supplier and po.supplier_id is not None:
        po.supplier = None
        po.supplier_name = ""
        changed.append("supplier")
    for name in ("expected_delivery_date", "notes", "invoice_url", "target_location_id"):
        value = getattr(patch, name)
        if value is not None:
            setattr(po, name, value)
            changed.append(name)
    if "expected_delivery_date" in patch.clear and po.expected_delivery_date is not None:
        po.expected_delivery_date = None
        changed.append("expected_delivery_date")

    if lines is not None:
        _write_lines(po, lines)
        changed.append("items")

    po.updated_by = actor
    po.recompute_totals(save=False)
    po.save()

    _log_po_action(
        po,
        action=AuditLog.Action.UPDATE,
        message=_("Purchase order edited."),
        actor=actor,
        fields=changed,
    )
    return po


@transaction.atomic
def cancel_purchase_order(po_id: Any, *, reason: str = "", actor: str = "") -> PurchaseOrder:
    """draft | ordered → cancelled."""
    po = lock_purchase_order(po_id)

    if not po.can_transition_to(PurchaseOrder.Status.CANCELLED):
        raise InvalidStateTransition(po.status, "cancelled")

    if ReceiptIntent.objects.filter(purchase_order=po).exists():
        raise ConcurrentModification(
            _("Purchase order %(number)s has a receipt in progress.") % {"number": po.po_number}
        )

    previous_status = str(po.status)
    po.status = PurchaseOrder.Status.CANCELLED
    po.cancelled_at = timezone.now()
    po.cancel_reason = reason
    po.updated_by = actor
    po.save(update_fields=["status", "cancelled_at", "cancel_reason", "updated_by", "updated_at"])

    _log_po_action(
        po,
        action=AuditLog.Action.STATUS_CHANGE,
        message=_("Purchase order cancelled."),
        actor=actor,
        previous_status=previous_status,
        reason=reason,
    )
    emit(PurchaseOrderCancelled(purchase_order_id=po.pk, po_number=po.po_number, previous_status=previous_status))
    return po


def receive_purchase_order(po_id: Any, receiving_input) -> PurchaseOrder:
    """ordered → received. See purchasing.receiving for the reconciliation rules."""
    from .receiving import receive

    return receive(po_id, receiving_input)
