"""Ordering service: order lifecycle and the order side of the fulfillment saga.

Orders are placed and cancelled through commands. Everything else that
happens to an order (payment, stock rejection, shipping, returns) arrives as
events from other services through the idempotent consumer in ``ordering.bus``.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
