# inventory/handlers.py
import logging

from core.domain.dispatcher import emit, register_handler

from .domain import LowStockDetected, StockAdjusted
from .models import InventoryItem
from .services import open_low_stock_alert, resolve_open_alerts

logger = logging.getLogger(__name__)


@register_handler(StockAdjusted)
def track_low_stock(event: StockAdjusted) -> None:
    """
    Keep at most one active LowStockAlert per item: open it when stock falls
    to the reorder point, resolve it once stock is back above.
    """
    item = InventoryItem.all_objects.get(pk=event.item_id)

    if event.new_stock <= item.reorder_point:
        alert, created = open_low_stock_alert(item)
        if created:
            emit(LowStockDetected(item_id=item.pk, alert_id=alert.pk, current_stock=event.new_stock))
        return

    resolved = resolve_open_alerts(item)
    if resolved:
        logger.info("Resolved %d low stock alert(s) for %s", resolved, item.sku)
