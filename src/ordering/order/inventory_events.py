"""Inbound Inventory events: an order without stock is failed and cancelled."""

import structlog
from protean.utils.globals import current_domain
from shared.events.catalog import Topics
from shared.events.inventory import StockRejected

from ordering.bus import consumer, outbox
from ordering.order.order import CancellationReason, Order

logger = structlog.get_logger(__name__)


@consumer.subscribe(Topics.STOCK_REJECTED, event_type=StockRejected, key=lambda event: event.order_id)
def on_stock_rejected(event: StockRejected):
    """Fail the order and announce its cancellation so Payments voids the payment."""
    repo = current_domain.repository_for(Order)
    order = repo.get(event.order_id)

    if order.is_closed:
        return f"ignored: order is {order.status}"

    order.mark_failed(CancellationReason.STOCK_REJECTED.value)
    repo.add(order)
    outbox.append(
        order.cancelled_event(reason=CancellationReason.STOCK_REJECTED.value, cancelled_by="system"),
        "Order",
        order.id,
    )

    logger.info("Order failed for insufficient stock", order_id=str(order.id), rejected_items=event.rejected_items)
    return "order failed: stock rejected"
