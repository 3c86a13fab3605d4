# purchasing/handlers.py
import logging

from core.domain.dispatcher import register_handler
from inventory.domain import StockAdjusted

from .domain import AutoReorderSkipped
from .reorder import on_stock_decreased

logger = logging.getLogger(__name__)


@register_handler(StockAdjusted, critical=True)
def reorder_on_stock_adjusted(event: StockAdjusted) -> None:
    """
    Evaluate the reorder rule after every adjustment, inside the
    adjustment's transaction. Errors propagate and undo the adjustment.
    """
    on_stock_decreased(event.item_id, event.new_stock)


@register_handler(AutoReorderSkipped)
def report_skipped_reorder(event: AutoReorderSkipped) -> None:
    if event.reason != "open_order":
        logger.error(
            "Item %s needs restocking (stock %s) but no order could be raised: %s",
            event.item_id,
            event.current_stock,
            event.reason,
        )
