"""Integration tests for the checkout, order and webhook endpoints via TestClient."""

import json

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from ordering.api import checkout_router, order_router, register_error_handlers, webhook_router
from ordering.catalogue.product import Product
from protean.utils.globals import current_domain

OWNER = {"X-Owner-Id": "owner-api-001"}


@pytest.fixture()
def client():
    from ordering.domain import ordering

    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with ordering.domain_context():
            return await call_next(request)

    app.include_router(checkout_router)
    app.include_router(order_router)
    app.include_router(webhook_router)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def p1(seed_product):
    return seed_product(name="P1", price=10.0, stock_quantity=5)


def _checkout_body(product, quantity=2, unit_price=None, address=None):
    return {
        "items": [
            {
                "product_id": str(product.id),
                "quantity": quantity,
                "unit_price": product.price if unit_price is None else unit_price,
            }
        ],
        "shipping_address": address,
        "same_as_shipping": True,
    }


def _place(client, product, address, quantity=2):
    response = client.post("/checkout", json=_checkout_body(product, quantity, address=address), headers=OWNER)
    assert response.status_code == 201
    return response.json()


class TestCheckoutPreview:
    def test_preview_uses_displayed_prices(self, client):
        response = client.post("/checkout/preview", json={"items": [{"product_id": "x", "quantity": 2, "unit_price": 40}]})
        assert response.status_code == 200
        assert response.json() == {
            "subtotal": 80.0,
            "tax": 6.4,
            "shipping": 0.0,
            "total": 86.4,
            "free_shipping_remaining": 0.0,
            "qualifies_for_free_shipping": True,
        }

    def test_empty_preview_pays_shipping(self, client):
        response = client.post("/checkout/preview", json={"items": []})
        assert response.json()["total"] == 9.99


class TestCheckoutValidate:
    def test_returns_server_priced_lines(self, client, p1, address):
        response = client.post("/checkout/validate", json=_checkout_body(p1, address=address), headers=OWNER)

        assert response.status_code == 200
        data = response.json()
        assert data["items"][0]["line_total"] == 20.0
        assert data["pricing"]["total"] == 31.59
        assert current_domain.repository_for(Product).get(p1.id).stock_quantity == 5

    def test_owner_header_is_required(self, client, p1, address):
        response = client.post("/checkout/validate", json=_checkout_body(p1, address=address))
        assert response.status_code == 422


class TestCheckoutSubmit:
    def test_places_order(self, client, p1, address):
        order = _place(client, p1, address)

        assert order["status"] == "PENDING"
        assert order["payment_status"] == "PENDING"
        assert order["subtotal"] == 20.0
        assert order["tax"] == 1.6
        assert order["shipping"] == 9.99
        assert order["total"] == 31.59
        assert order["owner_id"] == "owner-api-001"
        assert order["billing_address"]["city"] == address["city"]
        assert current_domain.repository_for(Product).get(p1.id).stock_quantity == 3

    def test_tampered_price_is_rejected(self, client, p1, address):
        response = client.post(
            "/checkout",
            json=_checkout_body(p1, unit_price=1.0, address=address),
            headers=OWNER,
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error_type"] == "PRICE_MISMATCH"
        assert body["errors"][0]["expected"] == "10.00"
        assert current_domain.repository_for(Product).get(p1.id).stock_quantity == 5

    def test_out_of_stock(self, client, p1, address):
        response = client.post("/checkout", json=_checkout_body(p1, quantity=6, address=address), headers=OWNER)
        assert response.status_code == 409
        assert response.json()["error_type"] == "OUT_OF_STOCK"

    def test_unknown_product(self, client, address):
        body = {
            "items": [{"product_id": "ghost", "quantity": 1, "unit_price": 1.0}],
            "shipping_address": address,
            "same_as_shipping": True,
        }
        response = client.post("/checkout", json=body, headers=OWNER)
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "NOT_FOUND"

    def test_total_mismatch(self, client, p1, address):
        body = _checkout_body(p1, address=address)
        body["client_subtotal"] = 15.0
        response = client.post("/checkout", json=body, headers=OWNER)
        assert response.status_code == 409
        assert response.json()["error_type"] == "TOTAL_MISMATCH"

    def test_missing_billing_address(self, client, p1, address):
        body = _checkout_body(p1, address=address)
        body["same_as_shipping"] = False
        response = client.post("/checkout", json=body, headers=OWNER)
        assert response.status_code == 422
        assert response.json()["error_type"] == "VALIDATION_ERROR"


class TestOrders:
    def test_get_own_order(self, client, p1, address):
        placed = _place(client, p1, address)

        response = client.get(f"/orders/{placed['order_id']}", headers=OWNER)

        assert response.status_code == 200
        assert response.json()["order_number"] == placed["order_number"]
        assert response.json()["items"][0]["product_name"] == "P1"

    def test_other_owner_gets_404(self, client, p1, address):
        placed = _place(client, p1, address)
        response = client.get(f"/orders/{placed['order_id']}", headers={"X-Owner-Id": "intruder"})
        assert response.status_code == 404

    def test_history_is_scoped_to_owner(self, client, p1, address):
        _place(client, p1, address, quantity=1)
        _place(client, p1, address, quantity=1)

        mine = client.get("/orders", headers=OWNER).json()
        theirs = client.get("/orders", headers={"X-Owner-Id": "someone-else"}).json()

        assert len(mine) == 2
        assert theirs == []

    def test_history_status_filter(self, client, p1, address):
        first = _place(client, p1, address, quantity=1)
        _place(client, p1, address, quantity=1)
        client.post(f"/orders/{first['order_id']}/cancel", json={"reason": "duplicate"}, headers=OWNER)

        cancelled = client.get("/orders", params={"status": "CANCELLED"}, headers=OWNER).json()
        assert [o["order_id"] for o in cancelled] == [first["order_id"]]

    def test_cancel_does_not_restock(self, client, p1, address):
        placed = _place(client, p1, address)

        response = client.post(f"/orders/{placed['order_id']}/cancel", json={}, headers=OWNER)

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert current_domain.repository_for(Product).get(p1.id).stock_quantity == 3


class TestPayments:
    def test_start_and_capture_payment(self, client, p1, address, fake_paypal):
        placed = _place(client, p1, address)

        started = client.post(f"/orders/{placed['order_id']}/payments/paypal", headers=OWNER)
        assert started.status_code == 201
        external_id = started.json()["external_id"]

        captured = client.post(
            f"/orders/{placed['order_id']}/payments/paypal/capture",
            json={"external_id": external_id},
            headers=OWNER,
        )
        assert captured.status_code == 200
        assert captured.json()["payment_status"] == "PAID"
        assert captured.json()["status"] == "CONFIRMED"

        again = client.post(f"/orders/{placed['order_id']}/payments/paypal", headers=OWNER)
        assert again.status_code == 409
        assert again.json()["error_type"] == "ALREADY_PAID"

    def test_unknown_provider(self, client, p1, address):
        placed = _place(client, p1, address)
        response = client.post(f"/orders/{placed['order_id']}/payments/venmo", headers=OWNER)
        assert response.status_code == 404


class TestWebhooks:
    def _capture_event(self, order_number):
        return {
            "id": "WH-API-1",
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource": {
                "id": "CAP-API-1",
                "status": "COMPLETED",
                "custom_id": order_number,
                "amount": {"value": "31.59", "currency_code": "USD"},
            },
        }

    def test_duplicate_delivery(self, client, p1, address, fake_paypal):
        placed = _place(client, p1, address)
        body = json.dumps(self._capture_event(placed["order_number"]))

        first = client.post("/webhooks/paypal", content=body, headers={"Content-Type": "application/json"})
        second = client.post("/webhooks/paypal", content=body, headers={"Content-Type": "application/json"})

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["detail"] == "Already processed"

        order = client.get(f"/orders/{placed['order_id']}", headers=OWNER).json()
        assert order["payment_status"] == "PAID"

    def test_bad_signature(self, client, p1, address, fake_paypal):
        fake_paypal.configure(signature_valid=False)
        placed = _place(client, p1, address)

        response = client.post("/webhooks/paypal", content=json.dumps(self._capture_event(placed["order_number"])))

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid webhook"}

    def test_unknown_order(self, client, fake_paypal):
        response = client.post("/webhooks/paypal", content=json.dumps(self._capture_event("19990101000000-NONE")))
        assert response.status_code == 422

    def test_unknown_provider(self, client):
        response = client.post("/webhooks/square", content=b"{}")
        assert response.status_code == 404
