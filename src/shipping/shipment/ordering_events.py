"""Inbound Ordering events: cancelled orders are not shipped."""

import structlog
from protean.utils.globals import current_domain
from shared.events.catalog import Topics
from shared.events.ordering import OrderCancelled

from shipping.bus import consumer
from shipping.shipment.shipment import Shipment, ShipmentStatus, shipment_for_order

logger = structlog.get_logger(__name__)


@consumer.subscribe(Topics.ORDER_CANCELLED, event_type=OrderCancelled, key=lambda event: event.order_id)
def on_order_cancelled(event: OrderCancelled):
    repo = current_domain.repository_for(Shipment)
    shipment = shipment_for_order(repo, event.order_id)

    if shipment is None:
        # Keeps a late PaymentConfirmed from readying a shipment
        shipment = Shipment.prepare(event.order_id)
        shipment.cancel(event.reason)
        repo.add(shipment)
        return "shipment cancelled before preparation"

    status = ShipmentStatus(shipment.status)
    if status == ShipmentStatus.SHIPPING:
        logger.warning(
            "Cancellation received for a shipment already underway",
            order_id=str(event.order_id),
            status=shipment.status,
        )
        return "ignored: shipment in transit"
    if status != ShipmentStatus.READY:
        return f"ignored: shipment is {shipment.status}"

    shipment.cancel(event.reason)
    repo.add(shipment)
    return "shipment cancelled"
