"""PayPal payment gateway adapter (Orders v2 REST API over httpx).

Payables are PayPal orders created with intent CAPTURE. The order number
travels as ``custom_id`` on the purchase unit and comes back on capture
webhooks. Webhook signatures are checked by PayPal's own
verify-webhook-signature endpoint.
"""

import json
import time

import httpx
import structlog

from ordering.errors import GatewayError
from ordering.gateway.port import CaptureResult, EventKind, PayableIntent, PaymentGatewayAdapter, ProviderEvent
from ordering.pricing import to_money

logger = structlog.get_logger(__name__)

_SIGNATURE_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}

# Refresh this many seconds before PayPal says the token expires
_TOKEN_REFRESH_MARGIN = 60

_COUNTRY_CODES = {
    "united states": "US",
    "united states of america": "US",
    "usa": "US",
    "canada": "CA",
    "united kingdom": "GB",
    "uk": "GB",
    "germany": "DE",
    "france": "FR",
    "italy": "IT",
    "spain": "ES",
    "netherlands": "NL",
    "belgium": "BE",
    "switzerland": "CH",
    "austria": "AT",
    "sweden": "SE",
    "norway": "NO",
    "denmark": "DK",
    "finland": "FI",
    "poland": "PL",
    "czech republic": "CZ",
    "hungary": "HU",
    "portugal": "PT",
    "greece": "GR",
    "ireland": "IE",
    "luxembourg": "LU",
    "australia": "AU",
    "new zealand": "NZ",
    "japan": "JP",
    "south korea": "KR",
    "singapore": "SG",
    "hong kong": "HK",
    "taiwan": "TW",
    "india": "IN",
    "china": "CN",
    "brazil": "BR",
    "mexico": "MX",
    "argentina": "AR",
    "chile": "CL",
    "colombia": "CO",
    "peru": "PE",
    "venezuela": "VE",
    "uruguay": "UY",
    "paraguay": "PY",
    "ecuador": "EC",
    "bolivia": "BO",
    "guyana": "GY",
    "suriname": "SR",
    "french guiana": "GF",
}


def _money(amount, currency) -> dict:
    return {"currency_code": currency, "value": f"{to_money(amount):.2f}"}


def _amount(resource) -> tuple[float | None, str | None]:
    amount = resource.get("amount") or {}
    value = amount.get("value")
    return (float(value) if value is not None else None), amount.get("currency_code")


def country_code(country) -> str | None:
    """Return the ISO 3166 alpha-2 code for a country name or code, or None if unknown."""
    value = (country or "").strip()
    code = _COUNTRY_CODES.get(value.lower())
    if code is None and len(value) == 2 and value.isalpha():
        code = value.upper()
    return code


def _order_number(resource) -> str | None:
    return resource.get("custom_id") or resource.get("invoice_id")


def _capture_id_from_links(resource) -> str | None:
    """Refund resources link back to their capture with rel ``up``."""
    for link in resource.get("links") or []:
        if link.get("rel") == "up" and link.get("href"):
            return link["href"].rstrip("/").split("/")[-1]
    return None


def parse_paypal_event(event: dict) -> ProviderEvent:
    """Normalize a PayPal webhook event payload."""
    event_type = event.get("event_type", "")
    resource = event.get("resource") or {}
    base = {"provider": PayPalGateway.name, "event_id": event.get("id", ""), "event_type": event_type}

    if event_type == "PAYMENT.CAPTURE.COMPLETED":
        amount, currency = _amount(resource)
        related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
        return ProviderEvent(
            kind=EventKind.CAPTURED,
            order_number=_order_number(resource),
            provider_order_id=related.get("order_id"),
            capture_id=resource.get("id"),
            amount=amount,
            currency=currency,
            details={
                "paypal_capture_id": resource.get("id"),
                "paypal_capture_status": resource.get("status"),
                "paypal_amount": amount,
                "paypal_currency": currency,
            },
            **base,
        )

    if event_type == "PAYMENT.CAPTURE.DENIED":
        reason = (resource.get("status_details") or {}).get("reason") or "Payment denied"
        return ProviderEvent(
            kind=EventKind.FAILED,
            order_number=_order_number(resource),
            capture_id=resource.get("id"),
            reason=reason,
            details={"paypal_capture_id": resource.get("id"), "paypal_capture_status": resource.get("status")},
            **base,
        )

    if event_type == "PAYMENT.CAPTURE.REFUNDED":
        amount, currency = _amount(resource)
        return ProviderEvent(
            kind=EventKind.REFUNDED,
            order_number=_order_number(resource),
            capture_id=_capture_id_from_links(resource),
            refund_id=resource.get("id"),
            amount=amount,
            currency=currency,
            details={"paypal_refund_id": resource.get("id"), "paypal_refund_amount": amount},
            **base,
        )

    if event_type == "CHECKOUT.ORDER.APPROVED":
        units = resource.get("purchase_units") or [{}]
        return ProviderEvent(
            kind=EventKind.APPROVED,
            order_number=units[0].get("custom_id"),
            provider_order_id=resource.get("id"),
            details={"paypal_order_approved": True},
            **base,
        )

    return ProviderEvent(kind=EventKind.IGNORED, **base)


class PayPalGateway(PaymentGatewayAdapter):
    """Production PayPal gateway adapter."""

    name = "paypal"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        webhook_id: str,
        api_base: str = "https://api-m.sandbox.paypal.com",
        app_url: str = "http://localhost:3000",
        client: httpx.Client | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.webhook_id = webhook_id
        self.app_url = app_url.rstrip("/")
        self._client = client or httpx.Client(base_url=api_base, timeout=10.0)
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0

    def _token(self) -> str:
        if self._access_token is None or time.monotonic() >= self._token_expires_at:
            response = self._client.post(
                "/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
            )
            response.raise_for_status()
            payload = response.json()
            self._access_token = payload["access_token"]
            lifetime = int(payload.get("expires_in") or 0)
            self._token_expires_at = time.monotonic() + max(lifetime - _TOKEN_REFRESH_MARGIN, 0)
        return self._access_token

    def _send(self, method, path, **kwargs) -> httpx.Response:
        return self._client.request(
            method,
            path,
            headers={"Authorization": f"Bearer {self._token()}", "Content-Type": "application/json"},
            **kwargs,
        )

    def _request(self, operation, method, path, **kwargs) -> dict:
        try:
            response = self._send(method, path, **kwargs)
            if response.status_code == 401:
                # Token revoked or expired early; fetch a new one and retry once
                logger.info("paypal_token_rejected", operation=operation)
                self._access_token = None
                response = self._send(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("paypal_request_failed", operation=operation, path=path, error=str(e))
            raise GatewayError(self.name, operation, reason=str(e)) from e
        return response.json()

    def _order_body(self, order) -> dict:
        currency = order.currency or "USD"
        item_total = sum(to_money(item.line_total) for item in order.items)
        address = order.shipping_address
        code = country_code(address.country)
        if code is None:
            # PayPal rejects unknown country codes; let the buyer pick the address there
            logger.warning("paypal_country_unmapped", order_id=str(order.id), country=address.country)

        unit = {
            "reference_id": str(order.id),
            "custom_id": order.order_number,
            "description": f"Order {order.order_number}",
            "amount": {
                **_money(order.total, currency),
                "breakdown": {
                    "item_total": _money(item_total, currency),
                    "shipping": _money(order.shipping, currency),
                    "tax_total": _money(order.tax, currency),
                },
            },
            "items": [
                {
                    "name": item.product_name,
                    "unit_amount": _money(item.unit_price, currency),
                    "quantity": str(item.quantity),
                    "category": "PHYSICAL_GOODS",
                }
                for item in order.items
            ],
        }
        if code is not None:
            unit["shipping"] = {
                "name": {"full_name": f"{address.first_name} {address.last_name}"},
                "address": {
                    "address_line_1": address.street,
                    "admin_area_2": address.city,
                    "admin_area_1": address.state,
                    "postal_code": address.postal_code,
                    "country_code": code,
                },
            }

        return {
            "intent": "CAPTURE",
            "application_context": {
                "return_url": f"{self.app_url}/checkout/success",
                "cancel_url": f"{self.app_url}/checkout/cancel",
                "shipping_preference": "SET_PROVIDED_ADDRESS" if code is not None else "GET_FROM_FILE",
                "user_action": "PAY_NOW",
            },
            "purchase_units": [unit],
        }

    def create_payable(self, order) -> PayableIntent:
        result = self._request("create_payable", "POST", "/v2/checkout/orders", json=self._order_body(order))
        approve = next((link["href"] for link in result.get("links", []) if link.get("rel") == "approve"), None)
        return PayableIntent(
            external_id=result["id"],
            provider_status=result.get("status"),
            redirect_url=approve,
            raw={"paypal_order_id": result["id"], "paypal_status": result.get("status")},
        )

    def capture(self, external_id: str) -> CaptureResult:
        result = self._request("capture", "POST", f"/v2/checkout/orders/{external_id}/capture", json={})
        units = result.get("purchase_units") or [{}]
        captures = (units[0].get("payments") or {}).get("captures") or [{}]
        amount, currency = _amount(captures[0])
        return CaptureResult(
            captured=result.get("status") == "COMPLETED",
            provider_status=result.get("status"),
            capture_id=captures[0].get("id"),
            captured_amount=amount,
            currency=currency,
            raw={
                "paypal_order_id": result.get("id"),
                "paypal_capture_id": captures[0].get("id"),
                "paypal_capture_status": captures[0].get("status"),
            },
        )

    def verify_webhook(self, raw_body: bytes, headers: dict) -> bool:
        values = {key: headers.get(header) for key, header in _SIGNATURE_HEADERS.items()}
        if not self.webhook_id or not all(values.values()):
            return False

        result = self._request(
            "verify_webhook",
            "POST",
            "/v1/notifications/verify-webhook-signature",
            json={**values, "webhook_id": self.webhook_id, "webhook_event": json.loads(raw_body)},
        )
        return result.get("verification_status") == "SUCCESS"

    def parse_webhook(self, raw_body: bytes) -> ProviderEvent:
        return parse_paypal_event(json.loads(raw_body))
