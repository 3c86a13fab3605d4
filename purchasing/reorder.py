# purchasing/reorder.py

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from django.utils.translation import gettext as _

from core.domain.dispatcher import emit
from core.models import AuditLog
from core.services.audit import log_event
from inventory.models import DECIMAL_ONE, InventoryItem, InventorySettings

from .domain import AutoReorderCreated, AutoReorderSkipped
from .models import PurchaseOrder
from .services import LineInput, create_purchase_order

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def reorder_quantity(item: InventoryItem, new_stock: Decimal) -> Decimal:
    """Refill up to the maximum level, never less than one unit."""
    return max(item.max_stock_level - new_stock, DECIMAL_ONE)


def open_auto_order_exists(item: InventoryItem, supplier_id: int) -> bool:
    return (
        PurchaseOrder.objects.open()
        .auto_generated()
        .filter(supplier_id=supplier_id, lines__item=item)
        .exists()
    )


def _skip(item: InventoryItem, new_stock: Decimal, reason: str, *, audit: bool) -> None:
    logger.warning(
        "Auto reorder skipped for %s at stock %s (reorder point %s): %s",
        item.sku,
        new_stock,
        item.reorder_point,
        reason,
    )
    if audit:
        log_event(
            action=AuditLog.Action.AUTO_REORDER,
            message=_("Auto reorder skipped: %(reason)s") % {"reason": reason},
            actor=SYSTEM_ACTOR,
            target=item,
            extra={"reason": reason, "current_stock": str(new_stock)},
        )
    emit(AutoReorderSkipped(item_id=item.pk, current_stock=new_stock, reason=reason))


def on_stock_decreased(item_id: Any, new_stock: Decimal) -> Optional[PurchaseOrder]:
    """
    Raise a purchase order for an item that fell to its reorder point.

    - Above the reorder point nothing happens.
    - Without a usable preferred supplier the skip is logged, audited and
      published as AutoReorderSkipped.
    - While an open auto-generated order for the same supplier already
      covers the item, no second order is created.

    Returns the new PO, or None when nothing was ordered.
    """
    settings = InventorySettings.get_solo()
    if not settings.auto_reorder_enabled:
        logger.debug("Auto reorder disabled; ignoring item %s", item_id)
        return None

    item = InventoryItem.all_objects.select_related("preferred_supplier").get(pk=item_id)
    if new_stock > item.reorder_point:
        return None
    if not item.is_active or item.is_deleted:
        logger.debug("Item %s is inactive; not reordering", item.sku)
        return None

    supplier = item.preferred_supplier
    if supplier is None:
        _skip(item, new_stock, "no_preferred_supplier", audit=True)
        return None
    if not supplier.can_receive_orders:
        _skip(item, new_stock, "supplier_unavailable", audit=True)
        return None

    if open_auto_order_exists(item, supplier.pk):
        _skip(item, new_stock, "open_order", audit=False)
        return None

    quantity = reorder_quantity(item, new_stock)
    po = create_purchase_order(
        supplier_id=supplier.pk,
        items=[LineInput(item_id=item.pk, quantity=quantity, unit_cost=item.unit_cost, unit=item.unit)],
        status=settings.auto_reorder_status,
        notes=_("Auto-generated: %(name)s at %(stock)s, reorder point %(point)s.") % {
            "name": item.name,
            "stock": new_stock,
            "point": item.reorder_point,
        },
        created_by=SYSTEM_ACTOR,
        is_auto_generated=True,
    )

    log_event(
        action=AuditLog.Action.AUTO_REORDER,
        message=_("Auto reorder created %(number)s.") % {"number": po.po_number},
        actor=SYSTEM_ACTOR,
        target=item,
        extra={"po_number": po.po_number, "quantity": str(quantity), "current_stock": str(new_stock)},
    )
    emit(AutoReorderCreated(purchase_order_id=po.pk, item_id=item.pk, supplier_id=supplier.pk, quantity=quantity))
    return po
