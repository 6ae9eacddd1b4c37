"""Inbound Shipping events: delivery progress and completed returns."""

import structlog
from protean.utils.globals import current_domain
from shared.events.catalog import Topics
from shared.events.shipping import ReturnCompleted, ShipmentDelivered, ShipmentShipped

from ordering.bus import consumer, outbox
from ordering.order.order import CancellationReason, Order

logger = structlog.get_logger(__name__)


@consumer.subscribe(Topics.SHIPMENT_SHIPPED, event_type=ShipmentShipped, key=lambda event: event.shipment_id)
def on_shipment_shipped(event: ShipmentShipped):
    repo = current_domain.repository_for(Order)
    order = repo.get(event.order_id)
    if not order.mark_shipping():
        return f"order already {order.status}"
    repo.add(order)
    return "order marked shipping"


@consumer.subscribe(Topics.SHIPMENT_DELIVERED, event_type=ShipmentDelivered, key=lambda event: event.shipment_id)
def on_shipment_delivered(event: ShipmentDelivered):
    repo = current_domain.repository_for(Order)
    order = repo.get(event.order_id)
    if not order.mark_delivered():
        return f"order already {order.status}"
    repo.add(order)
    return "order marked delivered"


@consumer.subscribe(Topics.RETURN_COMPLETED, event_type=ReturnCompleted, key=lambda event: event.return_id)
def on_return_completed(event: ReturnCompleted):
    """Close a returned order and cancel it, which restores stock and refunds payment."""
    repo = current_domain.repository_for(Order)
    order = repo.get(event.order_id)

    if not order.mark_returned():
        return "order already returned"
    repo.add(order)
    outbox.append(
        order.cancelled_event(reason=CancellationReason.RETURN_COMPLETED.value, cancelled_by="system"),
        "Order",
        order.id,
    )

    logger.info("Returned order closed", order_id=str(order.id), return_id=str(event.return_id))
    return "order returned"
