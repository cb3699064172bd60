"""Ordering bounded context: checkout, order placement and payment reconciliation.

Orders and the product inventory records they decrement live in the same
domain so that order creation and stock decrement share one unit of work.
"""

from protean.domain import Domain

from ordering.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
ordering = Domain(name="ordering")
