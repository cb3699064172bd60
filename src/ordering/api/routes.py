"""FastAPI routes for the Ordering domain: checkout, orders and webhooks.

The caller's identity arrives in the ``X-Owner-Id`` header; authentication
happens upstream.
"""

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    CancelOrderRequest,
    CaptureRequest,
    CheckoutRequest,
    CheckoutValidationResponse,
    OrderResponse,
    PayableResponseSchema,
    PreviewRequest,
    PricingResponse,
    WebhookResponse,
)
from ordering.checkout.validation import CartLine, validate_checkout
from ordering.order.fulfillment import CancelOrder
from ordering.order.placement import place_order
from ordering.order.queries import get_order, list_orders
from ordering.payment.capture import capture_payment
from ordering.payment.initiation import create_payable
from ordering.pricing import calculate_totals
from ordering.webhook.reconciler import handle_webhook


def _order_response(order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        owner_id=str(order.owner_id),
        status=order.status,
        payment_status=order.payment_status,
        items=[
            {
                "product_id": str(item.product_id),
                "variant_id": str(item.variant_id) if item.variant_id else None,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "line_total": item.line_total,
                "product_name": item.product_name,
                "product_slug": item.product_slug,
                "product_image": item.product_image,
                "variant_name": item.variant_name,
                "variant_value": item.variant_value,
                "sku": item.sku,
            }
            for item in order.items
        ],
        shipping_address=order.shipping_address.to_dict() if order.shipping_address else None,
        billing_address=order.billing_address.to_dict() if order.billing_address else None,
        subtotal=order.subtotal,
        tax=order.tax,
        shipping=order.shipping,
        total=order.total,
        currency=order.currency,
        notes=order.notes,
        payment_provider=order.payment_provider,
        tracking_number=order.tracking_number,
        created_at=order.created_at.isoformat() if order.created_at else None,
        updated_at=order.updated_at.isoformat() if order.updated_at else None,
    )


def _validate(owner_id: str, body: CheckoutRequest):
    return validate_checkout(
        owner_id=owner_id,
        lines=[
            CartLine(
                product_id=line.product_id,
                variant_id=line.variant_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in body.items
        ],
        shipping_address=body.shipping_address.model_dump(exclude_none=True),
        billing_address=body.billing_address.model_dump(exclude_none=True) if body.billing_address else None,
        same_as_shipping=body.same_as_shipping,
        notes=body.notes,
        client_subtotal=body.client_subtotal,
    )


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/preview", response_model=PricingResponse)
async def preview_totals(body: PreviewRequest) -> PricingResponse:
    """Price a cart from its displayed prices. Nothing is checked against the catalog."""
    summary = calculate_totals((line.unit_price, line.quantity) for line in body.items)
    return PricingResponse(**summary.as_floats())


@checkout_router.post("/validate", response_model=CheckoutValidationResponse)
async def validate_cart(body: CheckoutRequest, x_owner_id: str = Header(...)) -> CheckoutValidationResponse:
    checkout = _validate(x_owner_id, body)
    return CheckoutValidationResponse(
        items=[line.as_item_data() for line in checkout.lines],
        pricing=PricingResponse(**checkout.pricing.as_floats()),
    )


@checkout_router.post("", status_code=201, response_model=OrderResponse)
async def submit_checkout(body: CheckoutRequest, x_owner_id: str = Header(...)) -> OrderResponse:
    checkout = _validate(x_owner_id, body)
    order = place_order(checkout)
    return _order_response(order)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=list[OrderResponse])
async def order_history(x_owner_id: str = Header(...), status: str | None = None) -> list[OrderResponse]:
    return [_order_response(order) for order in list_orders(x_owner_id, status=status)]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def order_detail(order_id: str, x_owner_id: str = Header(...)) -> OrderResponse:
    return _order_response(get_order(x_owner_id, order_id))


@order_router.post("/{order_id}/payments/{provider}", status_code=201, response_model=PayableResponseSchema)
async def start_payment(order_id: str, provider: str, x_owner_id: str = Header(...)) -> PayableResponseSchema:
    payable = create_payable(x_owner_id, order_id, provider)
    return PayableResponseSchema(
        order_id=payable.order_id,
        provider=payable.provider,
        external_id=payable.external_id,
        redirect_url=payable.redirect_url,
        client_token=payable.client_token,
        provider_status=payable.provider_status,
    )


@order_router.post("/{order_id}/payments/{provider}/capture", response_model=OrderResponse)
async def capture_returned_payment(
    order_id: str, provider: str, body: CaptureRequest, x_owner_id: str = Header(...)
) -> OrderResponse:
    order = capture_payment(x_owner_id, order_id, provider, body.external_id)
    return _order_response(order)


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest, x_owner_id: str = Header(...)) -> OrderResponse:
    order = get_order(x_owner_id, order_id)
    current_domain.process(CancelOrder(order_id=str(order.id), reason=body.reason), asynchronous=False)
    return _order_response(get_order(x_owner_id, order_id))


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/{provider}", response_model=WebhookResponse)
async def receive_webhook(provider: str, request: Request) -> JSONResponse:
    raw_body = await request.body()
    outcome = handle_webhook(provider, raw_body, request.headers)
    return JSONResponse(status_code=outcome.status_code, content={"detail": outcome.detail})
