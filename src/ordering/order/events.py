"""Domain events for the Order aggregate.

Events are versioned, immutable facts. Payment events carry the provider
and the correlation id that produced them so the audit trail can be traced
back to the provider's dashboard.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A validated checkout was turned into a PENDING order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    owner_id = Identifier(required=True)
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    tax = Float(required=True)
    shipping = Float(required=True)
    total = Float(required=True)
    currency = String(default="USD")
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentReferenceAttached:
    """A payable was created at a provider and linked to the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    provider = String(required=True)
    payment_intent_id = String()
    provider_order_id = String()
    attached_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentCaptured:
    __version__ = 1

    order_id = Identifier(required=True)
    provider = String(required=True)
    capture_id = String()
    amount = Float()
    captured_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    provider = String(required=True)
    reason = String(max_length=500)
    failed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    provider = String(required=True)
    refund_id = String()
    amount = Float()
    refunded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderProcessing:
    __version__ = 1

    order_id = Identifier(required=True)
    started_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    tracking_number = String()
    shipped_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)
