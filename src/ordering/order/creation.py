"""Order placement: command and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from ordering.bus import outbox
from ordering.domain import ordering
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    order_id = Identifier()  # Generated when absent
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {sku_id, quantity, unit_price}


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = Order.place(
            customer_id=command.customer_id,
            items=command.items,
            order_id=command.order_id,
        )
        current_domain.repository_for(Order).add(order)
        outbox.append(order.created_event(), "Order", order.id)

        logger.info("Order placed", order_id=str(order.id), total_amount=order.total_amount)
        return str(order.id)
