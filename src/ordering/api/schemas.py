"""Pydantic request/response schemas for the Ordering API.

These are external contracts, kept separate from the internal Protean
commands and the validated checkout dataclasses.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    first_name: str
    last_name: str
    company: str | None = None
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str
    phone: str | None = None


class CartLineSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)


_ADDRESS_EXAMPLE = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "street": "12 Analytical Row",
    "city": "London",
    "postal_code": "N1 9GU",
    "country": "GB",
}


# ---------------------------------------------------------------------------
# Checkout Request Schemas
# ---------------------------------------------------------------------------
class PreviewRequest(BaseModel):
    items: list[CartLineSchema] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"items": [{"product_id": "prod-001", "quantity": 2, "unit_price": 19.99}]},
            ]
        }
    }


class CheckoutRequest(BaseModel):
    items: list[CartLineSchema] = Field(min_length=1)
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    same_as_shipping: bool = False
    notes: str | None = None
    client_subtotal: float | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {"product_id": "prod-001", "quantity": 2, "unit_price": 19.99},
                        {"product_id": "prod-002", "variant_id": "var-010", "quantity": 1, "unit_price": 45.00},
                    ],
                    "shipping_address": _ADDRESS_EXAMPLE,
                    "same_as_shipping": True,
                    "client_subtotal": 84.98,
                }
            ]
        }
    }


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class CaptureRequest(BaseModel):
    external_id: str

    model_config = {
        "json_schema_extra": {
            "examples": [{"external_id": "5O190127TN364715T"}],
        }
    }


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class PricingResponse(BaseModel):
    subtotal: float
    tax: float
    shipping: float
    total: float
    free_shipping_remaining: float
    qualifies_for_free_shipping: bool


class ValidatedLineResponse(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int
    unit_price: float
    line_total: float
    product_name: str
    product_slug: str | None = None
    product_image: str | None = None
    variant_name: str | None = None
    variant_value: str | None = None
    sku: str | None = None


class CheckoutValidationResponse(BaseModel):
    items: list[ValidatedLineResponse]
    pricing: PricingResponse


class OrderItemResponse(ValidatedLineResponse):
    pass


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    owner_id: str
    status: str
    payment_status: str
    items: list[OrderItemResponse]
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    subtotal: float
    tax: float
    shipping: float
    total: float
    currency: str
    notes: str | None = None
    payment_provider: str | None = None
    tracking_number: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class PayableResponseSchema(BaseModel):
    order_id: str
    provider: str
    external_id: str
    redirect_url: str | None = None
    client_token: str | None = None
    provider_status: str | None = None


class WebhookResponse(BaseModel):
    detail: str


class ErrorResponse(BaseModel):
    detail: str
    error_type: str
    errors: list[dict] = Field(default_factory=list)
