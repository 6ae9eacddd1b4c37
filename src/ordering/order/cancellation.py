"""Order cancellation: by the customer, an admin, or the payment timeout scan."""

from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.bus import outbox, runtime
from ordering.domain import ordering
from ordering.order.order import CancellationReason, Order, OrderStatus

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=100)
    cancelled_by = String(required=True, max_length=50)  # user, admin, system


@ordering.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(reason=command.reason, cancelled_by=command.cancelled_by)
        repo.add(order)
        outbox.append(order.cancelled_event(), "Order", order.id)

        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            reason=command.reason,
            cancelled_by=command.cancelled_by,
        )


def find_expired_orders(as_of=None, expiration_minutes=None):
    """Unpaid orders older than the payment window."""
    as_of = as_of or datetime.now(UTC)
    minutes = expiration_minutes if expiration_minutes is not None else runtime.settings.order_expiration_minutes
    cutoff = as_of - timedelta(minutes=minutes)

    return (
        current_domain.repository_for(Order)
        ._dao.query.filter(status=OrderStatus.CREATED.value, created_at__lt=cutoff)
        .order_by("created_at")
        .all()
        .items
    )


def cancel_expired_orders(as_of=None, expiration_minutes=None) -> list[str]:
    """Cancel every unpaid order past its payment window.

    Each order is cancelled in its own transaction; a failure is logged and
    the scan moves on to the next order. Returns the cancelled order ids.
    """
    cancelled = []
    for order in find_expired_orders(as_of, expiration_minutes):
        try:
            current_domain.process(
                CancelOrder(
                    order_id=str(order.id),
                    reason=CancellationReason.SYSTEM_TIMEOUT.value,
                    cancelled_by="system",
                ),
                asynchronous=False,
            )
        except Exception as exc:
            logger.error("Expired order cancellation failed", order_id=str(order.id), error=str(exc))
            continue
        cancelled.append(str(order.id))

    if cancelled:
        logger.info("Expired orders cancelled", count=len(cancelled))
    return cancelled


runtime.schedule("order-expiry", cancel_expired_orders, runtime.settings.order_expiry_scan_seconds)
