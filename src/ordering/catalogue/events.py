"""Domain events for the Product inventory record."""

from protean.fields import DateTime, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Product")
class StockDecremented:
    """Stock was consumed by a placed order."""

    __version__ = 1

    product_id = Identifier(required=True)
    order_number = String(max_length=50)
    quantity = Integer(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    decremented_at = DateTime(required=True)
