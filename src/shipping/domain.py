"""Shipping service: shipments, exchanges and returns after payment.

Exchanges emit stock compensations through the outbox in the same
transaction as the exchange state change.
"""

import structlog
from protean.domain import Domain

shipping = Domain(name="shipping")

logger = structlog.get_logger(__name__)
