"""Order aggregate (CQRS): the durable record of a placed checkout.

The Order is created once by order placement with status PENDING and
payment status PENDING. Afterwards only the lifecycle methods below change
it, and each of them goes through the state machine in
``ordering.order.lifecycle``. Payment methods return False when the order is
already in the target state so that redelivered provider events are no-ops.

Items and addresses are purchase-time snapshots. Later catalog edits never
alter them.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from ordering.domain import ordering
from ordering.errors import AlreadyPaid
from ordering.order.events import (
    OrderCancelled,
    OrderDelivered,
    OrderPlaced,
    OrderProcessing,
    OrderShipped,
    PaymentCaptured,
    PaymentFailed,
    PaymentReferenceAttached,
    PaymentRefunded,
)
from ordering.order.lifecycle import (
    OrderStatus,
    PaymentStatus,
    is_payable,
    order_transition,
    payment_transition,
)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class Address:
    """A shipping or billing address captured at checkout time."""

    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    company = String(max_length=255)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)
    phone = String(max_length=50)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(required=True, min_value=0.0)
    product_name = String(required=True, max_length=255)
    product_slug = String(max_length=255)
    product_image = String(max_length=500)
    variant_name = String(max_length=100)
    variant_value = String(max_length=100)
    sku = String(max_length=100)


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=50, unique=True)
    owner_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    items = HasMany(OrderItem)
    shipping_address = ValueObject(Address, required=True)
    billing_address = ValueObject(Address, required=True)
    subtotal = Float(required=True, min_value=0.0)
    tax = Float(required=True, min_value=0.0)
    shipping = Float(required=True, min_value=0.0)
    total = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    notes = Text()

    # Payment correlation
    payment_provider = String(max_length=20)
    payment_intent_id = String(max_length=255)  # Stripe payment intent / checkout session
    provider_order_id = String(max_length=255)  # PayPal order id
    capture_id = String(max_length=255)
    payment_metadata = Text()  # JSON audit bag
    failure_reason = String(max_length=500)

    tracking_number = String(max_length=100)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_number,
        owner_id,
        items_data,
        shipping_address,
        billing_address,
        pricing,
        notes=None,
        currency="USD",
    ):
        """Create a PENDING order from server-priced line snapshots.

        Args:
            items_data: list of dicts with OrderItem field values.
            shipping_address / billing_address: Address field dicts.
            pricing: dict with subtotal, tax, shipping and total.
        """
        if not items_data:
            raise ValidationError({"items": ["Order must contain at least one item"]})

        now = datetime.now(UTC)
        order = cls(
            order_number=order_number,
            owner_id=owner_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            shipping_address=Address(**shipping_address),
            billing_address=Address(**billing_address),
            subtotal=pricing["subtotal"],
            tax=pricing["tax"],
            shipping=pricing["shipping"],
            total=pricing["total"],
            currency=currency,
            notes=notes,
            payment_metadata=json.dumps({}),
            created_at=now,
            updated_at=now,
        )
        for item in items_data:
            order.add_items(OrderItem(**item))

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                owner_id=str(owner_id),
                item_count=sum(item.quantity for item in order.items),
                subtotal=order.subtotal,
                tax=order.tax,
                shipping=order.shipping,
                total=order.total,
                currency=currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Metadata helpers
    # -------------------------------------------------------------------
    @property
    def payment_details(self) -> dict:
        return json.loads(self.payment_metadata) if self.payment_metadata else {}

    def _merge_metadata(self, values):
        if not values:
            return
        merged = self.payment_details
        merged.update({k: v for k, v in values.items() if v is not None})
        self.payment_metadata = json.dumps(merged, sort_keys=True, default=str)

    def _touch(self):
        now = datetime.now(UTC)
        self.updated_at = now
        return now

    # -------------------------------------------------------------------
    # Payment initiation
    # -------------------------------------------------------------------
    def assert_payable(self):
        if not is_payable(self.status, self.payment_status):
            raise AlreadyPaid(str(self.id), status=self.status, payment_status=self.payment_status)

    def attach_payment_reference(self, provider, payment_intent_id=None, provider_order_id=None, metadata=None):
        """Link a provider payable to this order. Re-attaching the same reference is a no-op."""
        if (
            self.payment_provider == provider
            and self.payment_intent_id == payment_intent_id
            and self.provider_order_id == provider_order_id
        ):
            return False

        self.assert_payable()

        self.payment_provider = provider
        self.payment_intent_id = payment_intent_id
        self.provider_order_id = provider_order_id
        self._merge_metadata(metadata)
        now = self._touch()

        self.raise_(
            PaymentReferenceAttached(
                order_id=str(self.id),
                provider=provider,
                payment_intent_id=payment_intent_id,
                provider_order_id=provider_order_id,
                attached_at=now,
            )
        )
        return True

    def record_payment_metadata(self, metadata):
        """Record provider facts that do not move the payment state (e.g. approvals)."""
        self._merge_metadata(metadata)
        self._touch()

    # -------------------------------------------------------------------
    # Payment outcomes
    # -------------------------------------------------------------------
    def mark_paid(self, provider, capture_id=None, amount=None, metadata=None):
        """PENDING/FAILED → PAID. A PENDING order is confirmed at the same time."""
        if not payment_transition(self.payment_status, PaymentStatus.PAID.value):
            return False

        self.payment_status = PaymentStatus.PAID.value
        if OrderStatus(self.status) == OrderStatus.PENDING:
            order_transition(self.status, OrderStatus.CONFIRMED.value)
            self.status = OrderStatus.CONFIRMED.value

        self.payment_provider = self.payment_provider or provider
        if capture_id:
            self.capture_id = capture_id
        self.failure_reason = None
        self._merge_metadata(metadata)
        now = self._touch()

        self.raise_(
            PaymentCaptured(
                order_id=str(self.id),
                provider=provider,
                capture_id=capture_id,
                amount=amount,
                captured_at=now,
            )
        )
        return True

    def mark_payment_failed(self, provider, reason=None, metadata=None):
        """PENDING → FAILED. Raises InvalidTransition for a settled payment."""
        if not payment_transition(self.payment_status, PaymentStatus.FAILED.value):
            return False

        self.payment_status = PaymentStatus.FAILED.value
        self.failure_reason = reason
        self._merge_metadata(metadata)
        now = self._touch()

        self.raise_(
            PaymentFailed(
                order_id=str(self.id),
                provider=provider,
                reason=reason,
                failed_at=now,
            )
        )
        return True

    def mark_refunded(self, provider, refund_id=None, amount=None, metadata=None):
        """PAID → REFUNDED. A delivered order moves to REFUNDED with it."""
        if not payment_transition(self.payment_status, PaymentStatus.REFUNDED.value):
            return False

        self.payment_status = PaymentStatus.REFUNDED.value
        if OrderStatus(self.status) == OrderStatus.DELIVERED:
            order_transition(self.status, OrderStatus.REFUNDED.value)
            self.status = OrderStatus.REFUNDED.value

        self._merge_metadata(metadata)
        now = self._touch()

        self.raise_(
            PaymentRefunded(
                order_id=str(self.id),
                provider=provider,
                refund_id=refund_id,
                amount=amount,
                refunded_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Fulfilment
    # -------------------------------------------------------------------
    def cancel(self, reason=None):
        if not order_transition(self.status, OrderStatus.CANCELLED.value):
            return False

        self.status = OrderStatus.CANCELLED.value
        now = self._touch()
        self.raise_(OrderCancelled(order_id=str(self.id), reason=reason, cancelled_at=now))
        return True

    def start_processing(self):
        if not order_transition(self.status, OrderStatus.PROCESSING.value):
            return False

        self.status = OrderStatus.PROCESSING.value
        now = self._touch()
        self.raise_(OrderProcessing(order_id=str(self.id), started_at=now))
        return True

    def ship(self, tracking_number=None):
        if not order_transition(self.status, OrderStatus.SHIPPED.value):
            return False

        self.status = OrderStatus.SHIPPED.value
        self.tracking_number = tracking_number
        now = self._touch()
        self.raise_(OrderShipped(order_id=str(self.id), tracking_number=tracking_number, shipped_at=now))
        return True

    def deliver(self):
        if not order_transition(self.status, OrderStatus.DELIVERED.value):
            return False

        self.status = OrderStatus.DELIVERED.value
        now = self._touch()
        self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=now))
        return True
