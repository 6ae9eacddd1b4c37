"""Payments service: payment capture, failure and refunds.

A pending payment is opened for every new order. Confirming it, failing it or
cancelling its order publishes the outcome for Ordering, Inventory and Shipping.
"""

import structlog
from protean.domain import Domain

payments = Domain(name="payments")

logger = structlog.get_logger(__name__)
