# inventory/domain.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from core.domain.events import DomainEvent


@dataclass(frozen=True)
class StockAdjusted(DomainEvent):
    """
    Domain event: an item's stock level changed through the ledger.

    Emitted synchronously inside the adjustment's transaction.
    """
    item_id: int
    delta: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    transaction_type: str
    reason: str
    idempotency_key: Optional[str] = None

    @property
    def is_decrease(self) -> bool:
        return self.delta < 0


@dataclass(frozen=True)
class LowStockDetected(DomainEvent):
    """
    Domain event: an item crossed its reorder point and a new alert was opened.
    """
    item_id: int
    alert_id: int
    current_stock: Decimal
