# core/domain/events.py
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict

from django.utils import timezone


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """
    Something that already happened to stock or to a purchase order.

    Events are immutable facts raised by the services after the write they
    describe, inside the same transaction. Subclasses only add the ids and
    amounts a handler needs to act on; handlers re-read rows they change.

        @dataclass(frozen=True)
        class PurchaseOrderPlaced(DomainEvent):
            purchase_order_id: int
            po_number: str
    """
    occurred_at: datetime = field(default_factory=timezone.now)

    @property
    def name(self) -> str:
        return type(self).__name__

    def payload(self) -> Dict[str, Any]:
        """Event fields without the timestamp, as logged by the dispatcher."""
        data = asdict(self)
        data.pop("occurred_at", None)
        return data
