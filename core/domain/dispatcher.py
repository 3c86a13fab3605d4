# core/domain/dispatcher.py
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, DefaultDict, List, Type, TypeVar

from django.db import transaction

from .events import DomainEvent

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT", bound=DomainEvent)
Handler = Callable[[EventT], None]


@dataclass(frozen=True)
class _Registration:
    func: Handler
    critical: bool


class DomainEventDispatcher:
    """
    Simple in-process domain event dispatcher.

    Usage:

        from core.domain.dispatcher import register_handler, emit

        @register_handler(StockAdjusted, critical=True)
        def reorder_on_stock_adjusted(event: StockAdjusted) -> None:
            ...

        emit(StockAdjusted(item_id=1, delta=Decimal("-6"), new_stock=Decimal("4")))

    Handlers run synchronously inside the caller's transaction.
    """

    def __init__(self) -> None:
        # Mapping: { EventClass -> [registration, registration, ...] }
        self._handlers: DefaultDict[Type[DomainEvent], List[_Registration]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def register_handler(self, event_type: Type[EventT], *, critical: bool = False):
        """
        Decorator to register a handler for the given event type.

        A critical handler is part of the emitting operation: its exception
        propagates to the caller (and rolls back the surrounding atomic
        block). Non-critical handler errors are logged and swallowed.
        """

        def decorator(func: Handler) -> Handler:
            registrations = self._handlers[event_type]
            if any(r.func is func for r in registrations):
                return func
            registrations.append(_Registration(func=func, critical=critical))
            logger.debug(
                "Registered %s domain event handler %s for %s",
                "critical" if critical else "best-effort",
                func.__name__,
                event_type.__name__,
            )
            return func

        return decorator

    def handlers_for(self, event_type: Type[DomainEvent]) -> list[Handler]:
        return [r.func for r in self._handlers.get(event_type, [])]

    # ------------------------------------------------------------------
    # Emitting
    # ------------------------------------------------------------------
    def emit(self, event: DomainEvent) -> None:
        """
        Dispatch the given domain event to all registered handlers.

        - Handlers are executed in-process, synchronously, in registration order.
        - Exceptions in a best-effort handler are logged and do not stop other handlers.
        - Exceptions in a critical handler are re-raised.
        """
        event_type = type(event)
        registrations = self._handlers.get(event_type, [])

        if not registrations:
            logger.debug("No handlers registered for event %s", event.name)
            return

        logger.debug(
            "Emitting event %s to %d handler(s): %s",
            event.name,
            len(registrations),
            event.payload(),
        )

        for registration in registrations:
            if registration.critical:
                registration.func(event)  # type: ignore[arg-type]
                continue
            try:
                # each best-effort handler runs in its own savepoint
                with transaction.atomic():
                    registration.func(event)  # type: ignore[arg-type]
            except Exception:
                logger.exception(
                    "Error while handling event %s in handler %s",
                    event.name,
                    registration.func.__name__,
                )


# Global singleton dispatcher (sufficient for a Django monolith)
dispatcher = DomainEventDispatcher()

# Convenience API
register_handler = dispatcher.register_handler
emit = dispatcher.emit
