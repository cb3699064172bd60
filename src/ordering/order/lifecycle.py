"""Order state machine: the single lifecycle definition for orders and payments.

Order status:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    PENDING / CONFIRMED / PROCESSING → CANCELLED
    DELIVERED → REFUNDED (driven by a payment refund)

Payment status:
    PENDING → PAID | FAILED
    FAILED → PAID (a new attempt succeeded)
    PAID → REFUNDED

Moving to the state an order is already in is an idempotent no-op. Every
other move not listed above raises InvalidTransition.
"""

from enum import Enum

from ordering.errors import InvalidTransition


class OrderStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


_ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),  # Terminal
}

CANCELLABLE_STATUSES = frozenset(
    status for status, targets in _ORDER_TRANSITIONS.items() if OrderStatus.CANCELLED in targets
)


def _check(field, transitions, current, target) -> bool:
    if current == target:
        return False
    if target not in transitions[current]:
        raise InvalidTransition(field, current.value, target.value)
    return True


def order_transition(current, target) -> bool:
    """Validate an order status move.

    Returns True when the status must change, False when the order is already
    in ``target``. Raises InvalidTransition for an illegal move.
    """
    return _check("status", _ORDER_TRANSITIONS, OrderStatus(current), OrderStatus(target))


def payment_transition(current, target) -> bool:
    """Validate a payment status move. Same contract as order_transition."""
    return _check("payment_status", _PAYMENT_TRANSITIONS, PaymentStatus(current), PaymentStatus(target))


def is_payable(status, payment_status) -> bool:
    """An order accepts a new payment attempt only while PENDING and unpaid."""
    return OrderStatus(status) == OrderStatus.PENDING and PaymentStatus(payment_status) in (
        PaymentStatus.PENDING,
        PaymentStatus.FAILED,
    )
