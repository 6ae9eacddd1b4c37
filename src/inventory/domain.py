"""Inventory service: SKU stock levels and per-order allocations.

Stock only moves through idempotent paths: order allocations (decrease on
creation, exact reversal on cancellation) and compensation movements keyed by
their ``movement_id``.
"""

import structlog
from protean.domain import Domain

inventory = Domain(name="inventory")

logger = structlog.get_logger(__name__)
