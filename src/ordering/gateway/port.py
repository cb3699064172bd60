"""Payment gateway port (abstract interface).

Every payment provider is reached through this contract, so order and
webhook logic never branch on which provider is in use. Adapters do not
deduplicate calls; the webhook ledger does.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class EventKind(Enum):
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"
    APPROVED = "approved"
    IGNORED = "ignored"


@dataclass(frozen=True)
class PayableIntent:
    """A payable created at the provider for one order."""

    external_id: str
    provider_status: str | None = None
    redirect_url: str | None = None
    client_token: str | None = None
    payment_intent_id: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CaptureResult:
    captured: bool
    provider_status: str | None = None
    capture_id: str | None = None
    captured_amount: float | None = None
    currency: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderEvent:
    """A provider webhook normalized to what reconciliation needs."""

    provider: str
    event_id: str
    event_type: str
    kind: EventKind
    order_number: str | None = None
    order_id: str | None = None
    payment_intent_id: str | None = None
    provider_order_id: str | None = None
    capture_id: str | None = None
    refund_id: str | None = None
    amount: float | None = None
    currency: str | None = None
    reason: str | None = None
    details: dict = field(default_factory=dict)

    def references(self) -> dict:
        refs = {
            "order_number": self.order_number,
            "order_id": self.order_id,
            "payment_intent_id": self.payment_intent_id,
            "provider_order_id": self.provider_order_id,
            "capture_id": self.capture_id,
        }
        return {k: v for k, v in refs.items() if v}


class PaymentGatewayAdapter(ABC):
    """Abstract payment gateway interface."""

    name: str

    @abstractmethod
    def create_payable(self, order) -> PayableIntent:
        """Create a payable (checkout session, provider order) for an Order."""
        ...

    @abstractmethod
    def capture(self, external_id: str) -> CaptureResult:
        """Capture or confirm the payable identified by ``external_id``."""
        ...

    @abstractmethod
    def verify_webhook(self, raw_body: bytes, headers: dict) -> bool:
        """Check that a webhook payload is authentically from the provider.

        ``headers`` keys are lower-cased.
        """
        ...

    @abstractmethod
    def parse_webhook(self, raw_body: bytes) -> ProviderEvent:
        """Normalize a verified webhook payload."""
        ...
