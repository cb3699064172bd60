"""Error taxonomy for the Ordering context.

Business-rule errors (not found, out of stock, price or total mismatch,
already paid, invalid transition) are expected outcomes that callers render
back to the user. Signature and correlation errors are answered to payment
providers with non-retryable client errors. TransientStorageError and
GatewayError are retryable.
"""


class OrderingError(Exception):
    """Base exception for all ordering errors."""

    code = "ORDERING_ERROR"

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        payload.update({k: v for k, v in self.details.items() if v is not None})
        return payload


class NotFound(OrderingError):
    """Raised when a product, variant or order is unknown (or not the caller's)."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: str, line: int | None = None):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} not found: {identifier}", kind=kind, id=identifier, line=line)


class OutOfStock(OrderingError):
    """Raised when inventory cannot cover the requested quantity."""

    code = "OUT_OF_STOCK"

    def __init__(
        self,
        product_id: str,
        requested: int,
        available: int | None = None,
        variant_id: str | None = None,
        line: int | None = None,
    ):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        msg = f"Insufficient stock for product {product_id}"
        if available is not None:
            msg = f"{msg}: requested {requested}, available {available}"
        super().__init__(
            msg,
            product_id=product_id,
            variant_id=variant_id,
            requested=requested,
            available=available,
            line=line,
        )


class PriceMismatch(OrderingError):
    """Raised when the client-claimed unit price disagrees with the catalog."""

    code = "PRICE_MISMATCH"

    def __init__(self, product_id: str, claimed, expected, variant_id: str | None = None, line: int | None = None):
        self.product_id = product_id
        self.claimed = claimed
        self.expected = expected
        super().__init__(
            f"Price changed for product {product_id}: expected {expected}, got {claimed}",
            product_id=product_id,
            variant_id=variant_id,
            claimed=str(claimed),
            expected=str(expected),
            line=line,
        )


class TotalMismatch(OrderingError):
    """Raised when the client-submitted subtotal disagrees with the recomputed one."""

    code = "TOTAL_MISMATCH"

    def __init__(self, claimed, expected):
        self.claimed = claimed
        self.expected = expected
        super().__init__(
            f"Order subtotal mismatch: expected {expected}, got {claimed}",
            claimed=str(claimed),
            expected=str(expected),
        )


class CheckoutRejected(OrderingError):
    """Aggregates every line-level problem found while validating a cart."""

    def __init__(self, errors: list[OrderingError]):
        self.errors = errors
        super().__init__(f"Checkout rejected: {len(errors)} problem(s) found")

    @property
    def code(self) -> str:
        codes = {error.code for error in self.errors}
        if len(codes) == 1:
            return codes.pop()
        return "CHECKOUT_REJECTED"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "errors": [error.to_dict() for error in self.errors],
        }


class AlreadyPaid(OrderingError):
    """Raised when a payment is requested for an order that is settled or not payable."""

    code = "ALREADY_PAID"

    def __init__(self, order_id: str, status: str | None = None, payment_status: str | None = None):
        self.order_id = order_id
        super().__init__(
            f"Order {order_id} cannot accept a new payment",
            order_id=order_id,
            status=status,
            payment_status=payment_status,
        )


class InvalidSignature(OrderingError):
    """Raised when a webhook payload fails authenticity checks."""

    code = "INVALID_SIGNATURE"

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__("Invalid webhook signature", provider=provider)


class UnresolvedCorrelation(OrderingError):
    """Raised when a provider event references no known order."""

    code = "UNRESOLVED_CORRELATION"

    def __init__(self, provider: str, references: dict):
        self.provider = provider
        self.references = references
        super().__init__(f"No order matches {provider} event references", provider=provider, references=references)


class InvalidTransition(OrderingError):
    """Raised on a backward or illegal order lifecycle change."""

    code = "INVALID_TRANSITION"

    def __init__(self, field: str, current: str, target: str):
        self.field = field
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition {field} from {current} to {target}", field=field, current=current, target=target)


class TransientStorageError(OrderingError):
    """Raised when storage keeps failing after local retries."""

    code = "TRANSIENT_STORAGE_ERROR"

    def __init__(self, operation: str, attempts: int | None = None):
        self.operation = operation
        super().__init__("Temporary storage failure, please try again", operation=operation, attempts=attempts)


class GatewayError(OrderingError):
    """Raised when a payment provider call fails or returns an unusable response."""

    code = "GATEWAY_ERROR"

    def __init__(self, provider: str, operation: str, reason: str | None = None):
        self.provider = provider
        self.operation = operation
        super().__init__(f"Payment provider {provider} failed during {operation}", provider=provider, reason=reason)
