"""Stripe payment gateway adapter.

Payables are Stripe Checkout Sessions. The session's metadata carries the
internal order id and number so that webhooks can be correlated back to the
order. Signatures use Stripe's ``stripe-signature`` header scheme.
"""

import json
from datetime import UTC, datetime
from decimal import Decimal

import stripe
import structlog

from ordering.errors import GatewayError
from ordering.gateway.port import CaptureResult, EventKind, PayableIntent, PaymentGatewayAdapter, ProviderEvent
from ordering.pricing import to_money

logger = structlog.get_logger(__name__)


def to_minor_units(amount) -> int:
    return int(to_money(amount) * 100)


def from_minor_units(amount) -> float | None:
    if amount is None:
        return None
    return float(Decimal(amount) / 100)


def parse_stripe_event(event: dict) -> ProviderEvent:
    """Normalize a Stripe event payload."""
    event_type = event.get("type", "")
    obj = event.get("data", {}).get("object", {}) or {}
    metadata = obj.get("metadata") or {}
    base = {
        "provider": StripeGateway.name,
        "event_id": event.get("id", ""),
        "event_type": event_type,
        "order_id": metadata.get("orderId"),
        "order_number": metadata.get("orderNumber"),
    }

    if event_type == "checkout.session.completed":
        paid_at = datetime.fromtimestamp(event["created"], UTC).isoformat() if event.get("created") else None
        base["order_number"] = obj.get("client_reference_id") or base["order_number"]
        paid = obj.get("payment_status", "paid") in ("paid", "no_payment_required")
        return ProviderEvent(
            kind=EventKind.CAPTURED if paid else EventKind.APPROVED,
            provider_order_id=obj.get("id"),
            payment_intent_id=obj.get("payment_intent"),
            capture_id=obj.get("payment_intent"),
            amount=from_minor_units(obj.get("amount_total")),
            currency=(obj.get("currency") or "").upper() or None,
            details={
                "stripe_session_id": obj.get("id"),
                "payment_intent_id": obj.get("payment_intent"),
                "paid_at": paid_at,
            },
            **base,
        )

    if event_type == "payment_intent.succeeded":
        return ProviderEvent(
            kind=EventKind.CAPTURED,
            payment_intent_id=obj.get("id"),
            capture_id=obj.get("id"),
            amount=from_minor_units(obj.get("amount_received")),
            currency=(obj.get("currency") or "").upper() or None,
            details={"payment_intent_id": obj.get("id"), "payment_intent_status": obj.get("status")},
            **base,
        )

    if event_type == "payment_intent.payment_failed":
        error = obj.get("last_payment_error") or {}
        return ProviderEvent(
            kind=EventKind.FAILED,
            payment_intent_id=obj.get("id"),
            capture_id=obj.get("id"),
            reason=error.get("message") or "Payment failed",
            details={"payment_intent_id": obj.get("id"), "failure_code": error.get("code")},
            **base,
        )

    if event_type == "charge.refunded":
        refunds = (obj.get("refunds") or {}).get("data") or []
        refund_id = refunds[0].get("id") if refunds else None
        return ProviderEvent(
            kind=EventKind.REFUNDED,
            payment_intent_id=obj.get("payment_intent"),
            capture_id=obj.get("payment_intent"),
            refund_id=refund_id,
            amount=from_minor_units(obj.get("amount_refunded")),
            currency=(obj.get("currency") or "").upper() or None,
            details={"stripe_refund_id": refund_id, "stripe_charge_id": obj.get("id")},
            **base,
        )

    return ProviderEvent(kind=EventKind.IGNORED, **base)


class StripeGateway(PaymentGatewayAdapter):
    """Production Stripe gateway adapter (Checkout Sessions)."""

    name = "stripe"

    def __init__(self, api_key: str, webhook_secret: str, app_url: str = "http://localhost:3000") -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.app_url = app_url.rstrip("/")

    def _line_items(self, order):
        currency = (order.currency or "USD").lower()
        line_items = [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {
                        "name": item.product_name,
                        "metadata": {"productId": str(item.product_id), "variantId": str(item.variant_id or "")},
                    },
                    "unit_amount": to_minor_units(item.unit_price),
                },
                "quantity": item.quantity,
            }
            for item in order.items
        ]
        for label, amount in (("Shipping", order.shipping), ("Tax", order.tax)):
            if amount and amount > 0:
                line_items.append(
                    {
                        "price_data": {
                            "currency": currency,
                            "product_data": {"name": label},
                            "unit_amount": to_minor_units(amount),
                        },
                        "quantity": 1,
                    }
                )
        return line_items

    def create_payable(self, order) -> PayableIntent:
        metadata = {"orderId": str(order.id), "orderNumber": order.order_number}
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                line_items=self._line_items(order),
                client_reference_id=order.order_number,
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                success_url=f"{self.app_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self.app_url}/checkout/cancel",
            )
        except stripe.StripeError as e:
            logger.error("stripe_session_create_failed", order_id=str(order.id), error=str(e))
            raise GatewayError(self.name, "create_payable", reason=str(e)) from e

        return PayableIntent(
            external_id=session.id,
            provider_status=session.status,
            redirect_url=session.url,
            payment_intent_id=session.payment_intent,
            raw={"stripe_session_id": session.id},
        )

    def capture(self, external_id: str) -> CaptureResult:
        """Stripe captures on its own; this confirms the session was paid."""
        try:
            session = stripe.checkout.Session.retrieve(external_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error("stripe_session_retrieve_failed", session_id=external_id, error=str(e))
            raise GatewayError(self.name, "capture", reason=str(e)) from e

        return CaptureResult(
            captured=session.payment_status == "paid",
            provider_status=session.payment_status,
            capture_id=session.payment_intent,
            captured_amount=from_minor_units(session.amount_total),
            currency=(session.currency or "").upper() or None,
            raw={"stripe_session_id": session.id, "payment_intent_id": session.payment_intent},
        )

    def verify_webhook(self, raw_body: bytes, headers: dict) -> bool:
        signature = headers.get("stripe-signature")
        if not signature or not self.webhook_secret:
            return False
        try:
            stripe.WebhookSignature.verify_header(raw_body.decode("utf-8"), signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("stripe_signature_invalid", error=str(e))
            return False
        return True

    def parse_webhook(self, raw_body: bytes) -> ProviderEvent:
        return parse_stripe_event(json.loads(raw_body))
