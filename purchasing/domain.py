# purchasing/domain.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from core.domain.events import DomainEvent


@dataclass(frozen=True)
class PurchaseOrderPlaced(DomainEvent):
    """
    Domain event: a purchase order moved to ordered (created as ordered or placed from draft).
    """
    purchase_order_id: int
    po_number: str
    supplier_id: Optional[int]
    total_amount: Decimal


@dataclass(frozen=True)
class PurchaseOrderCancelled(DomainEvent):
    purchase_order_id: int
    po_number: str
    previous_status: str


@dataclass(frozen=True)
class PurchaseOrderReceived(DomainEvent):
    """
    Domain event: goods were received and stock was booked.
    """
    purchase_order_id: int
    po_number: str
    final_payable_amount: Decimal
    total_rejected_value: Decimal
    total_missing_value: Decimal
    credit_note_requested: bool


@dataclass(frozen=True)
class AutoReorderCreated(DomainEvent):
    purchase_order_id: int
    item_id: int
    supplier_id: int
    quantity: Decimal


@dataclass(frozen=True)
class AutoReorderSkipped(DomainEvent):
    """
    Domain event: an item is at or below its reorder point but no order was raised.

    reason is one of: "no_preferred_supplier", "supplier_unavailable", "open_order".
    """
    item_id: int
    current_stock: Decimal
    reason: str
