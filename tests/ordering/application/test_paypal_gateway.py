"""Tests for the PayPal adapter against a mocked PayPal REST API."""

import json

import httpx
import pytest
from ordering.errors import GatewayError
from ordering.gateway.paypal_adapter import PayPalGateway, country_code
from ordering.order.order import Address

SIGNATURE_HEADERS = {
    "paypal-auth-algo": "SHA256withRSA",
    "paypal-cert-url": "https://api.paypal.com/v1/notifications/certs/CERT-1",
    "paypal-transmission-id": "tx-1",
    "paypal-transmission-sig": "sig",
    "paypal-transmission-time": "2026-01-01T00:00:00Z",
}


class FakePayPalApi:
    """Records requests and answers them like the PayPal sandbox."""

    def __init__(
        self,
        verification_status="SUCCESS",
        capture_status="COMPLETED",
        fail_orders=False,
        expires_in=32400,
    ):
        self.verification_status = verification_status
        self.capture_status = capture_status
        self.fail_orders = fail_orders
        self.expires_in = expires_in
        self.revoked = set()
        self.tokens_issued = 0
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/v1/oauth2/token":
            self.tokens_issued += 1
            return httpx.Response(
                200, json={"access_token": f"token-{self.tokens_issued}", "expires_in": self.expires_in}
            )
        if request.headers.get("Authorization", "").removeprefix("Bearer ") in self.revoked:
            return httpx.Response(401, json={"error": "invalid_token"})
        if path == "/v2/checkout/orders":
            if self.fail_orders:
                return httpx.Response(500, json={"name": "INTERNAL_SERVICE_ERROR"})
            return httpx.Response(
                201,
                json={
                    "id": "PP-ORDER-1",
                    "status": "CREATED",
                    "links": [
                        {"rel": "self", "href": "https://api.paypal.test/v2/checkout/orders/PP-ORDER-1"},
                        {"rel": "approve", "href": "https://www.paypal.test/checkoutnow?token=PP-ORDER-1"},
                    ],
                },
            )
        if path == "/v2/checkout/orders/PP-ORDER-1/capture":
            return httpx.Response(
                201,
                json={
                    "id": "PP-ORDER-1",
                    "status": self.capture_status,
                    "purchase_units": [
                        {
                            "payments": {
                                "captures": [
                                    {
                                        "id": "CAP-1",
                                        "status": self.capture_status,
                                        "amount": {"value": "53.19", "currency_code": "USD"},
                                    }
                                ]
                            }
                        }
                    ],
                },
            )
        if path == "/v1/notifications/verify-webhook-signature":
            return httpx.Response(200, json={"verification_status": self.verification_status})
        return httpx.Response(404)

    def bodies(self, path):
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


def _gateway(api):
    client = httpx.Client(transport=httpx.MockTransport(api), base_url="https://api.paypal.test")
    return PayPalGateway(
        client_id="client",
        client_secret="secret",
        webhook_id="WH-ID-1",
        app_url="https://shop.test/",
        client=client,
    )


@pytest.fixture()
def order(seed_product, place):
    return place((seed_product(name="Kettle", price=40.0), 1))


class TestCreatePayable:
    def test_creates_capture_intent_order(self, order):
        api = FakePayPalApi()

        intent = _gateway(api).create_payable(order)

        assert intent.external_id == "PP-ORDER-1"
        assert intent.redirect_url == "https://www.paypal.test/checkoutnow?token=PP-ORDER-1"

        [body] = api.bodies("/v2/checkout/orders")
        unit = body["purchase_units"][0]
        assert body["intent"] == "CAPTURE"
        assert unit["custom_id"] == order.order_number
        assert unit["amount"]["value"] == "53.19"
        assert unit["amount"]["breakdown"]["item_total"]["value"] == "40.00"
        assert unit["amount"]["breakdown"]["tax_total"]["value"] == "3.20"
        assert unit["amount"]["breakdown"]["shipping"]["value"] == "9.99"
        assert body["application_context"]["return_url"] == "https://shop.test/checkout/success"

    def test_access_token_is_reused(self, order):
        api = FakePayPalApi()
        gateway = _gateway(api)

        gateway.create_payable(order)
        gateway.capture("PP-ORDER-1")

        token_calls = [r for r in api.requests if r.url.path == "/v1/oauth2/token"]
        assert len(token_calls) == 1
        assert api.requests[-1].headers["Authorization"] == "Bearer token-1"

    def test_country_name_is_sent_as_iso_code(self, order, address):
        api = FakePayPalApi()
        order.shipping_address = Address(**{**address, "country": "Germany"})

        _gateway(api).create_payable(order)

        [body] = api.bodies("/v2/checkout/orders")
        assert body["purchase_units"][0]["shipping"]["address"]["country_code"] == "DE"
        assert body["application_context"]["shipping_preference"] == "SET_PROVIDED_ADDRESS"

    def test_unknown_country_lets_paypal_collect_the_address(self, order, address):
        api = FakePayPalApi()
        order.shipping_address = Address(**{**address, "country": "Atlantis"})

        _gateway(api).create_payable(order)

        [body] = api.bodies("/v2/checkout/orders")
        assert "shipping" not in body["purchase_units"][0]
        assert body["application_context"]["shipping_preference"] == "GET_FROM_FILE"

    def test_http_failure_becomes_gateway_error(self, order):
        with pytest.raises(GatewayError) as exc:
            _gateway(FakePayPalApi(fail_orders=True)).create_payable(order)
        assert exc.value.provider == "paypal"
        assert exc.value.operation == "create_payable"


class TestCapture:
    def test_completed_capture(self):
        result = _gateway(FakePayPalApi()).capture("PP-ORDER-1")
        assert result.captured is True
        assert result.capture_id == "CAP-1"
        assert result.captured_amount == 53.19

    def test_declined_capture(self):
        result = _gateway(FakePayPalApi(capture_status="DECLINED")).capture("PP-ORDER-1")
        assert result.captured is False
        assert result.provider_status == "DECLINED"


class TestVerifyWebhook:
    def test_verified_by_paypal(self):
        api = FakePayPalApi()
        body = json.dumps({"id": "WH-1", "event_type": "PAYMENT.CAPTURE.COMPLETED"}).encode()

        assert _gateway(api).verify_webhook(body, dict(SIGNATURE_HEADERS)) is True

        [request] = api.bodies("/v1/notifications/verify-webhook-signature")
        assert request["webhook_id"] == "WH-ID-1"
        assert request["transmission_id"] == "tx-1"
        assert request["webhook_event"]["id"] == "WH-1"

    def test_rejected_by_paypal(self):
        api = FakePayPalApi(verification_status="FAILURE")
        assert _gateway(api).verify_webhook(b"{}", dict(SIGNATURE_HEADERS)) is False

    def test_missing_headers_skip_the_api_call(self):
        api = FakePayPalApi()
        headers = dict(SIGNATURE_HEADERS)
        del headers["paypal-transmission-sig"]

        assert _gateway(api).verify_webhook(b"{}", headers) is False
        assert api.requests == []


class TestAccessToken:
    def test_expired_token_is_refreshed(self):
        api = FakePayPalApi(expires_in=0)
        gateway = _gateway(api)

        gateway.capture("PP-ORDER-1")
        gateway.capture("PP-ORDER-1")

        assert api.tokens_issued == 2
        assert api.requests[-1].headers["Authorization"] == "Bearer token-2"

    def test_rejected_token_is_replaced_once(self):
        api = FakePayPalApi()
        gateway = _gateway(api)
        gateway.capture("PP-ORDER-1")
        api.revoked.add("token-1")

        result = gateway.capture("PP-ORDER-1")

        assert result.captured is True
        assert api.tokens_issued == 2
        assert api.requests[-1].headers["Authorization"] == "Bearer token-2"

    def test_token_rejected_twice_becomes_gateway_error(self):
        api = FakePayPalApi()
        api.revoked.update({"token-1", "token-2"})

        with pytest.raises(GatewayError) as exc:
            _gateway(api).capture("PP-ORDER-1")

        assert exc.value.operation == "capture"
        assert api.tokens_issued == 2


class TestCountryCode:
    def test_names_map_to_iso_codes(self):
        assert country_code("United States") == "US"
        assert country_code("germany") == "DE"
        assert country_code("UK") == "GB"

    def test_two_letter_codes_pass_through(self):
        assert country_code("gb") == "GB"
        assert country_code("FR") == "FR"

    def test_unknown_country(self):
        assert country_code("Atlantis") is None
        assert country_code("") is None
