# purchasing/receiving.py
"""
Goods receipt for ordered purchase orders.

Reconciliation per line:

    missing  = ordered - received - rejected
    rejected value = rejected x actual unit cost
    missing value  = missing  x original unit cost
    payable        = received x actual unit cost

A receipt runs in two steps. ``stage`` validates everything and stores the
reconciled lines in a ReceiptIntent; ``commit`` books the stock, writes the
receipt record and closes the order. A failure between the two leaves the
intent behind, and calling ``receive`` again with the same idempotency key
resumes it. Stock lines already booked under ``<key>:<position>`` are
skipped, so no line is counted twice.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

from django.db import transaction
from django.utils import timezone
from django.utils.translation import gettext as _

from core.domain.dispatcher import emit
from core.exceptions import ConcurrentModification, InvalidStateTransition, ValidationFailed
from core.models import AuditLog
from core.services.audit import log_event
from inventory.models import InventoryItem, InventorySettings, StockTransaction
from inventory.services import adjust_stock, apply_receipt_cost, to_decimal

from .domain import PurchaseOrderReceived
from .models import DECIMAL_ZERO, MONEY_PLACES, PurchaseOrder, PurchaseOrderLine, ReceiptIntent
from .services import lock_purchase_order

logger = logging.getLogger(__name__)


# ============================================================
# Input / output structures
# ============================================================

@dataclass
class ReceivingLineInput:
    item_id: int
    received_qty: Decimal
    rejected_qty: Decimal = DECIMAL_ZERO
    actual_unit_cost: Optional[Decimal] = None
    expiry_date: Optional[date] = None
    rejection_reason: str = ""


@dataclass
class ReceivingInput:
    """
    What the storekeeper counted. ``lines`` are matched to the PO lines by
    position and must cover every line.
    """
    lines: list[ReceivingLineInput]
    received_by: str
    notes: str = ""
    credit_note_requested: bool = False
    invoice_url: str = ""
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class ReconciledLine:
    position: int
    item_id: int
    name: str
    unit: str
    ordered_qty: Decimal
    received_qty: Decimal
    rejected_qty: Decimal
    missing_qty: Decimal
    original_unit_cost: Decimal
    actual_unit_cost: Decimal
    expiry_date: Optional[date] = None
    rejection_reason: str = ""

    @property
    def rejected_value(self) -> Decimal:
        return (self.rejected_qty * self.actual_unit_cost).quantize(MONEY_PLACES)

    @property
    def missing_value(self) -> Decimal:
        return (self.missing_qty * self.original_unit_cost).quantize(MONEY_PLACES)

    @property
    def payable(self) -> Decimal:
        return (self.received_qty * self.actual_unit_cost).quantize(MONEY_PLACES)

    def as_record(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "item_id": self.item_id,
            "name": self.name,
            "unit": self.unit,
            "ordered_qty": str(self.ordered_qty),
            "received_qty": str(self.received_qty),
            "rejected_qty": str(self.rejected_qty),
            "missing_qty": str(self.missing_qty),
            "original_unit_cost": str(self.original_unit_cost),
            "actual_unit_cost": str(self.actual_unit_cost),
            "line_rejected_value": str(self.rejected_value),
            "line_payable": str(self.payable),
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "rejection_reason": self.rejection_reason,
        }


@dataclass(frozen=True)
class Reconciliation:
    lines: tuple[ReconciledLine, ...] = field(default_factory=tuple)
    credit_note_requested: bool = False

    @property
    def total_rejected_value(self) -> Decimal:
        return sum((line.rejected_value for line in self.lines), DECIMAL_ZERO)

    @property
    def total_missing_value(self) -> Decimal:
        return sum((line.missing_value for line in self.lines), DECIMAL_ZERO)

    @property
    def final_payable_amount(self) -> Decimal:
        return sum((line.payable for line in self.lines), DECIMAL_ZERO)

    @property
    def shortfall_value(self) -> Decimal:
        return self.total_rejected_value + self.total_missing_value


# ============================================================
# Pure reconciliation
# ============================================================

def reconcile(
    po_lines: Sequence[PurchaseOrderLine],
    receiving_input: ReceivingInput,
    *,
    over_count_policy: str = InventorySettings.OverCountPolicy.REJECT,
) -> Reconciliation:
    """
    Compute the per-line reconciliation without touching the database.
    Every problem is collected and raised together as ValidationFailed.
    """
    errors: dict[str, list[str]] = {}

    if len(receiving_input.lines) != len(po_lines):
        raise ValidationFailed(
            {"items": [_("Expected %(count)d receiving lines, got %(got)d.") % {
                "count": len(po_lines),
                "got": len(receiving_input.lines),
            }]}
        )

    reconciled: list[ReconciledLine] = []

    for index, (po_line, counted) in enumerate(zip(po_lines, receiving_input.lines)):
        prefix = f"items.{index}"

        if counted.item_id != po_line.item_id:
            errors[f"{prefix}.item_id"] = [_("Does not match the item on the order line.")]
            continue

        try:
            received = to_decimal(counted.received_qty, field=f"{prefix}.received_qty")
            rejected = to_decimal(counted.rejected_qty, field=f"{prefix}.rejected_qty")
            actual_cost = to_decimal(
                po_line.unit_cost if counted.actual_unit_cost is None else counted.actual_unit_cost,
                field=f"{prefix}.actual_unit_cost",
            )
        except ValidationFailed as exc:
            errors.update(exc.field_errors)
            continue

        line_errors = False
        if received < 0:
            errors[f"{prefix}.received_qty"] = [_("Received quantity cannot be negative.")]
            line_errors = True
        if rejected < 0:
            errors[f"{prefix}.rejected_qty"] = [_("Rejected quantity cannot be negative.")]
            line_errors = True
        if actual_cost < 0:
            errors[f"{prefix}.actual_unit_cost"] = [_("Unit cost cannot be negative.")]
            line_errors = True
        if line_errors:
            continue

        missing = po_line.quantity - received - rejected
        if missing < 0:
            if over_count_policy != InventorySettings.OverCountPolicy.CLAMP:
                errors[f"{prefix}.received_qty"] = [
                    _("Received (%(received)s) plus rejected (%(rejected)s) exceeds the ordered %(ordered)s.") % {
                        "received": received,
                        "rejected": rejected,
                        "ordered": po_line.quantity,
                    }
                ]
                continue
            logger.warning(
                "Over-count on line %d (%s): ordered %s, received %s, rejected %s; clamping missing to 0",
                index,
                po_line.name,
                po_line.quantity,
                received,
                rejected,
            )
            missing = DECIMAL_ZERO

        reconciled.append(
            ReconciledLine(
                position=po_line.position,
                item_id=po_line.item_id,
                name=po_line.name,
                unit=po_line.unit,
                ordered_qty=po_line.quantity,
                received_qty=received,
                rejected_qty=rejected,
                missing_qty=missing,
                original_unit_cost=po_line.unit_cost,
                actual_unit_cost=actual_cost,
                expiry_date=counted.expiry_date,
                rejection_reason=counted.rejection_reason,
            )
        )

    if errors:
        raise ValidationFailed(errors)

    result = Reconciliation(lines=tuple(reconciled), credit_note_requested=receiving_input.credit_note_requested)

    if result.credit_note_requested and result.shortfall_value == 0:
        raise ValidationFailed(
            {"credit_note_requested": [_("A credit note needs rejected or missing goods.")]}
        )

    return result


def build_receipt_record(reconciliation: Reconciliation, receiving_input: ReceivingInput, key: str) -> dict[str, Any]:
    return {
        "received_by": receiving_input.received_by,
        "notes": receiving_input.notes,
        "invoice_url": receiving_input.invoice_url,
        "credit_note_requested": reconciliation.credit_note_requested,
        "idempotency_key": key,
        "items": [line.as_record() for line in reconciliation.lines],
        "total_rejected_value": str(reconciliation.total_rejected_value),
        "total_missing_value": str(reconciliation.total_missing_value),
        "final_payable_amount": str(reconciliation.final_payable_amount),
    }


# ============================================================
# Two-step receipt
# ============================================================

@transaction.atomic
def stage(po_id: Any, receiving_input: ReceivingInput, key: str) -> Optional[PurchaseOrder]:
    """
    Validate and record the receipt intent.

    Returns the PO when it was already received under ``key`` (nothing left
    to do), otherwise None.
    """
    po = lock_purchase_order(po_id)

    if po.status == PurchaseOrder.Status.RECEIVED:
        if (po.received_details or {}).get("idempotency_key") == key:
            logger.info("Receipt %s for %s already applied", key, po.po_number)
            return po
        raise InvalidStateTransition(po.status, "received")

    if not po.can_transition_to(PurchaseOrder.Status.RECEIVED):
        raise InvalidStateTransition(po.status, "received")

    intent = ReceiptIntent.objects.filter(purchase_order=po).first()
    if intent is not None:
        if intent.idempotency_key != key:
            raise ConcurrentModification(
                _("Purchase order %(number)s is already being received under another key.") % {
                    "number": po.po_number,
                }
            )
        logger.info("Resuming receipt %s for %s", key, po.po_number)
        return None

    settings = InventorySettings.get_solo()
    reconciliation = reconcile(
        list(po.lines.order_by("position")),
        receiving_input,
        over_count_policy=settings.over_count_policy,
    )
    ReceiptIntent.objects.create(
        purchase_order=po,
        idempotency_key=key,
        payload=build_receipt_record(reconciliation, receiving_input, key),
        created_by=receiving_input.received_by,
    )
    return None


def _book_line(po: PurchaseOrder, line: dict[str, Any], *, key: str, received_by: str) -> None:
    received = Decimal(line["received_qty"])
    if received <= 0:
        return

    line_key = f"{key}:{line['position']}"
    if StockTransaction.objects.filter(idempotency_key=line_key).exists():
        logger.info("Receipt line %s already booked, skipping", line_key)
        return

    item = InventoryItem.objects.get(pk=line["item_id"])
    base_qty = item.to_base(received, line["unit"])
    if base_qty <= 0:
        logger.warning("Receipt line %s rounds to no stock for %s, skipping", line_key, item.sku)
        return
    base_cost = (Decimal(line["actual_unit_cost"]) * received / base_qty).quantize(MONEY_PLACES)

    apply_receipt_cost(item.pk, base_qty, base_cost)
    adjust_stock(
        item.pk,
        base_qty,
        _("Received on %(number)s") % {"number": po.po_number},
        transaction_type=StockTransaction.Type.PURCHASE,
        reference=po.po_number,
        performed_by=received_by,
        idempotency_key=line_key,
        unit_cost=base_cost,
    )

    if line.get("expiry_date"):
        InventoryItem.objects.filter(pk=item.pk).update(expiry_date=date.fromisoformat(line["expiry_date"]))


@transaction.atomic
def commit(po_id: Any, key: str) -> PurchaseOrder:
    """Book the staged receipt and move the PO to received."""
    po = lock_purchase_order(po_id)
    intent = ReceiptIntent.objects.get(purchase_order=po, idempotency_key=key)
    record = dict(intent.payload)

    for line in record["items"]:
        _book_line(po, line, key=key, received_by=record["received_by"])

    total_missing_value = Decimal(record.pop("total_missing_value"))
    record["received_at"] = timezone.now().isoformat()

    po.received_details = record
    po.status = PurchaseOrder.Status.RECEIVED
    po.received_at = timezone.now()
    po.updated_by = record["received_by"]
    if record["invoice_url"]:
        po.invoice_url = record["invoice_url"]
    po.save(update_fields=["received_details", "status", "received_at", "invoice_url", "updated_by", "updated_at"])
    intent.delete()

    final_payable = Decimal(record["final_payable_amount"])
    total_rejected = Decimal(record["total_rejected_value"])

    log_event(
        action=AuditLog.Action.STATUS_CHANGE,
        message=_("Purchase order received."),
        actor=record["received_by"],
        target=po,
        extra={
            "po_number": po.po_number,
            "final_payable_amount": str(final_payable),
            "total_rejected_value": str(total_rejected),
            "total_missing_value": str(total_missing_value),
            "credit_note_requested": record["credit_note_requested"],
            "idempotency_key": key,
        },
    )
    logger.info(
        "Received %s: payable %s, rejected %s, missing %s",
        po.po_number,
        final_payable,
        total_rejected,
        total_missing_value,
    )
    emit(
        PurchaseOrderReceived(
            purchase_order_id=po.pk,
            po_number=po.po_number,
            final_payable_amount=final_payable,
            total_rejected_value=total_rejected,
            total_missing_value=total_missing_value,
            credit_note_requested=record["credit_note_requested"],
        )
    )
    return po


def receive(po_id: Any, receiving_input: ReceivingInput) -> PurchaseOrder:
    """
    Receive an ordered PO exactly once per idempotency key.

    Without a key a fresh one is generated, so only calls that pass the same
    key are recognised as retries.
    """
    key = receiving_input.idempotency_key or uuid.uuid4().hex

    done = stage(po_id, receiving_input, key)
    if done is not None:
        return done
    return commit(po_id, key)


@transaction.atomic
def discard_receipt_intent(po_id: Any, *, actor: str = "") -> bool:
    """
    Abandon a stuck receipt so the order can be received under a new key.
    Stock already booked for that key stays booked.
    """
    po = lock_purchase_order(po_id)
    if po.status != PurchaseOrder.Status.ORDERED:
        raise InvalidStateTransition(po.status, "reset for receiving")

    intent = ReceiptIntent.objects.filter(purchase_order=po).first()
    if intent is None:
        return False

    booked = StockTransaction.objects.filter(idempotency_key__startswith=f"{intent.idempotency_key}:").count()
    log_event(
        action=AuditLog.Action.OTHER,
        message=_("Receipt in progress discarded."),
        actor=actor,
        target=po,
        extra={"idempotency_key": intent.idempotency_key, "booked_lines": booked},
    )
    if booked:
        logger.warning(
            "Discarding receipt %s on %s with %d line(s) already booked",
            intent.idempotency_key,
            po.po_number,
            booked,
        )
    intent.delete()
    return True
