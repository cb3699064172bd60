"""Configurable fake payment gateway for development and testing.

No external calls are made. Payables and captures succeed or fail as
configured, and every call is recorded in ``calls``. Webhook payloads are
parsed with the real provider parser, so tests exercise the same event
normalization as production; only the signature check is simulated.
"""

import json
from uuid import uuid4

from ordering.gateway.port import CaptureResult, PayableIntent, PaymentGatewayAdapter, ProviderEvent
from ordering.gateway.paypal_adapter import parse_paypal_event
from ordering.gateway.stripe_adapter import parse_stripe_event

_PARSERS = {
    "stripe": parse_stripe_event,
    "paypal": parse_paypal_event,
}


class FakeGateway(PaymentGatewayAdapter):
    """Configurable fake payment gateway."""

    def __init__(self, name: str = "stripe") -> None:
        self.name = name
        self.should_succeed: bool = True
        self.signature_valid: bool = True
        self.captured_amount: float | None = None
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        signature_valid: bool = True,
        captured_amount: float | None = None,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.signature_valid = signature_valid
        self.captured_amount = captured_amount

    def create_payable(self, order) -> PayableIntent:
        self.calls.append({"method": "create_payable", "order_id": str(order.id), "total": order.total})
        external_id = f"fake_{self.name}_{uuid4().hex[:12]}"
        return PayableIntent(
            external_id=external_id,
            provider_status="created",
            redirect_url=f"https://fake.{self.name}.test/pay/{external_id}",
            raw={"fake_external_id": external_id},
        )

    def capture(self, external_id: str) -> CaptureResult:
        self.calls.append({"method": "capture", "external_id": external_id})
        if self.should_succeed:
            return CaptureResult(
                captured=True,
                provider_status="COMPLETED",
                capture_id=f"fake_cap_{uuid4().hex[:12]}",
                captured_amount=self.captured_amount,
                currency="USD",
            )
        return CaptureResult(captured=False, provider_status="DECLINED")

    def verify_webhook(self, raw_body: bytes, headers: dict) -> bool:
        self.calls.append({"method": "verify_webhook"})
        return self.signature_valid

    def parse_webhook(self, raw_body: bytes) -> ProviderEvent:
        return _PARSERS[self.name](json.loads(raw_body))
