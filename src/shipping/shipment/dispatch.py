"""Shipment dispatch and delivery: commands and handler."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from shipping.bus import outbox
from shipping.domain import shipping
from shipping.shipment.shipment import Shipment, shipment_for_order

logger = structlog.get_logger(__name__)


@shipping.command(part_of="Shipment")
class DispatchShipment:
    order_id = Identifier(required=True)
    tracking_number = String(required=True, max_length=100)


@shipping.command(part_of="Shipment")
class CompleteDelivery:
    order_id = Identifier(required=True)


def _shipment(repo, order_id):
    shipment = shipment_for_order(repo, order_id)
    if shipment is None:
        raise ObjectNotFoundError(f"No shipment exists for order {order_id}")
    return shipment


@shipping.command_handler(part_of=Shipment)
class ShipmentHandler:
    @handle(DispatchShipment)
    def dispatch_shipment(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = _shipment(repo, command.order_id)
        event = shipment.dispatch(command.tracking_number)
        repo.add(shipment)
        outbox.append(event, "Shipment", shipment.id)

        logger.info("Shipment dispatched", shipment_id=str(shipment.id), tracking_number=command.tracking_number)
        return str(shipment.id)

    @handle(CompleteDelivery)
    def complete_delivery(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = _shipment(repo, command.order_id)
        event = shipment.deliver()
        repo.add(shipment)
        outbox.append(event, "Shipment", shipment.id)

        logger.info("Shipment delivered", shipment_id=str(shipment.id), order_id=str(shipment.order_id))
        return str(shipment.id)
