"""Ordering bounded context: order lifecycle, payment reconciliation and dispatch.

Orders, payment attempts, rider assignments and riders live in one domain so
that a payment settlement and the order transition it triggers are committed
in a single unit of work.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
