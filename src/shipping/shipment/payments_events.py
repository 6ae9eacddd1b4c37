"""Inbound Payments events: a confirmed payment readies a shipment."""

from protean.utils.globals import current_domain
from shared.events.catalog import Topics
from shared.events.payments import PaymentConfirmed

from shipping.bus import consumer
from shipping.shipment.shipment import Shipment, shipment_for_order


@consumer.subscribe(Topics.PAYMENT_CONFIRMED, event_type=PaymentConfirmed, key=lambda event: event.payment_id)
def on_payment_confirmed(event: PaymentConfirmed):
    repo = current_domain.repository_for(Shipment)
    existing = shipment_for_order(repo, event.order_id)
    if existing is not None:
        return f"shipment already {existing.status}"

    shipment = Shipment.prepare(event.order_id, payment_id=event.payment_id)
    repo.add(shipment)
    return f"shipment {shipment.id} ready"
