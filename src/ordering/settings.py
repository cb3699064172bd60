"""Runtime settings for the Ordering context, read from the environment.

Pricing policy constants live here so the preview endpoint and the
server-side checkout authority read exactly the same values.
"""

import os
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class OrderingSettings:
    tax_rate: Decimal
    free_shipping_threshold: Decimal
    flat_shipping_fee: Decimal
    price_epsilon: Decimal
    currency: str
    storage_retry_attempts: int
    order_number_attempts: int
    webhook_claim_lease_seconds: int
    stripe_secret_key: str
    stripe_webhook_secret: str
    paypal_client_id: str
    paypal_client_secret: str
    paypal_webhook_id: str
    paypal_api_base: str
    app_url: str


_settings: OrderingSettings | None = None


def load_settings() -> OrderingSettings:
    """Build settings from environment variables, falling back to defaults."""
    env = os.environ
    return OrderingSettings(
        tax_rate=Decimal(env.get("ORDERING_TAX_RATE", "0.08")),
        free_shipping_threshold=Decimal(env.get("ORDERING_FREE_SHIPPING_THRESHOLD", "75.00")),
        flat_shipping_fee=Decimal(env.get("ORDERING_FLAT_SHIPPING_FEE", "9.99")),
        price_epsilon=Decimal(env.get("ORDERING_PRICE_EPSILON", "0.01")),
        currency=env.get("ORDERING_CURRENCY", "USD"),
        storage_retry_attempts=int(env.get("ORDERING_STORAGE_RETRY_ATTEMPTS", "3")),
        order_number_attempts=int(env.get("ORDERING_ORDER_NUMBER_ATTEMPTS", "5")),
        webhook_claim_lease_seconds=int(env.get("ORDERING_WEBHOOK_CLAIM_LEASE_SECONDS", "300")),
        stripe_secret_key=env.get("STRIPE_SECRET_KEY", ""),
        stripe_webhook_secret=env.get("STRIPE_WEBHOOK_SECRET", ""),
        paypal_client_id=env.get("PAYPAL_CLIENT_ID", ""),
        paypal_client_secret=env.get("PAYPAL_CLIENT_SECRET", ""),
        paypal_webhook_id=env.get("PAYPAL_WEBHOOK_ID", ""),
        paypal_api_base=env.get("PAYPAL_API_BASE", "https://api-m.sandbox.paypal.com"),
        app_url=env.get("APP_URL", "http://localhost:3000"),
    )


def get_settings() -> OrderingSettings:
    """Return the process-wide settings (loaded on first use)."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
