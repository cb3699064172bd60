"""Payment gateway registry.

Provides get_gateway() / set_gateway() per provider name:
- StripeGateway and PayPalGateway built from settings by default
- FakeGateway swapped in for development and tests
"""

from ordering.errors import NotFound
from ordering.gateway.paypal_adapter import PayPalGateway
from ordering.gateway.port import PaymentGatewayAdapter
from ordering.gateway.stripe_adapter import StripeGateway
from ordering.settings import get_settings

PROVIDERS = ("stripe", "paypal")

_gateways: dict[str, PaymentGatewayAdapter] = {}


def _build(provider: str) -> PaymentGatewayAdapter:
    settings = get_settings()
    if provider == "stripe":
        return StripeGateway(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            app_url=settings.app_url,
        )
    return PayPalGateway(
        client_id=settings.paypal_client_id,
        client_secret=settings.paypal_client_secret,
        webhook_id=settings.paypal_webhook_id,
        api_base=settings.paypal_api_base,
        app_url=settings.app_url,
    )


def get_gateway(provider: str) -> PaymentGatewayAdapter:
    """Return the gateway for ``provider``. Raises NotFound for unknown providers."""
    if provider not in PROVIDERS:
        raise NotFound("payment provider", provider)
    if provider not in _gateways:
        _gateways[provider] = _build(provider)
    return _gateways[provider]


def set_gateway(provider: str, gateway: PaymentGatewayAdapter) -> None:
    """Override the gateway used for ``provider`` (useful for tests)."""
    _gateways[provider] = gateway


def reset_gateways() -> None:
    """Forget all gateways; the next lookup rebuilds them from settings."""
    _gateways.clear()
