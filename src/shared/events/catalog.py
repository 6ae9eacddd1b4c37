"""Topic names and the registry of every cross-service event contract."""

from messaging.codec import EventRegistry
from shared.events.inventory import InventoryDecrease, InventoryIncrease, StockRejected
from shared.events.ordering import OrderCancelled, OrderCreated
from shared.events.payments import PaymentCancelled, PaymentConfirmed, PaymentRefunded
from shared.events.shipping import (
    ExchangeApproved,
    ExchangeCompleted,
    ExchangeReturnCompleted,
    ReturnCompleted,
    ShipmentDelivered,
    ShipmentShipped,
)


class Topics:
    ORDER_CREATED = "order.created"
    ORDER_CANCELLED = "order.cancelled"
    PAYMENT_CONFIRMED = "payment.confirmed"
    PAYMENT_CANCELLED = "payment.cancelled"
    PAYMENT_REFUNDED = "payment.refunded"
    INVENTORY_DECREASE = "inventory.decrease"
    INVENTORY_INCREASE = "inventory.increase"
    STOCK_REJECTED = "stock.rejected"
    SHIPMENT_SHIPPED = "shipment.shipped"
    SHIPMENT_DELIVERED = "shipment.delivered"
    EXCHANGE_APPROVED = "exchange.approved"
    EXCHANGE_RETURN_COMPLETED = "exchange.return-completed"
    EXCHANGE_COMPLETED = "exchange.completed"
    RETURN_COMPLETED = "return.completed"


registry = EventRegistry()

registry.register(OrderCreated, "Ordering.OrderCreated.v1", Topics.ORDER_CREATED)
registry.register(OrderCancelled, "Ordering.OrderCancelled.v1", Topics.ORDER_CANCELLED)
registry.register(PaymentConfirmed, "Payments.PaymentConfirmed.v1", Topics.PAYMENT_CONFIRMED)
registry.register(PaymentCancelled, "Payments.PaymentCancelled.v1", Topics.PAYMENT_CANCELLED)
registry.register(PaymentRefunded, "Payments.PaymentRefunded.v1", Topics.PAYMENT_REFUNDED)
registry.register(InventoryDecrease, "Inventory.InventoryDecrease.v1", Topics.INVENTORY_DECREASE)
registry.register(InventoryIncrease, "Inventory.InventoryIncrease.v1", Topics.INVENTORY_INCREASE)
registry.register(StockRejected, "Inventory.StockRejected.v1", Topics.STOCK_REJECTED)
registry.register(ShipmentShipped, "Shipping.ShipmentShipped.v1", Topics.SHIPMENT_SHIPPED)
registry.register(ShipmentDelivered, "Shipping.ShipmentDelivered.v1", Topics.SHIPMENT_DELIVERED)
registry.register(ExchangeApproved, "Shipping.ExchangeApproved.v1", Topics.EXCHANGE_APPROVED)
registry.register(ExchangeReturnCompleted, "Shipping.ExchangeReturnCompleted.v1", Topics.EXCHANGE_RETURN_COMPLETED)
registry.register(ExchangeCompleted, "Shipping.ExchangeCompleted.v1", Topics.EXCHANGE_COMPLETED)
registry.register(ReturnCompleted, "Shipping.ReturnCompleted.v1", Topics.RETURN_COMPLETED)


def register_contracts(domain) -> None:
    """Register every contract as an external event of ``domain``."""
    registry.register_with(domain)
