"""Payment initiation: create a payable at a provider and link it to the order.

The provider call happens outside any unit of work. Linking the result to
the order is a separate AttachPaymentReference command, which is idempotent
and safe to retry.
"""

import json
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from ordering.gateway import get_gateway
from ordering.order.payment import AttachPaymentReference
from ordering.order.queries import get_order

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PayableResponse:
    order_id: str
    provider: str
    external_id: str
    redirect_url: str | None
    client_token: str | None
    provider_status: str | None


def create_payable(owner_id, order_id, provider) -> PayableResponse:
    """Create a payable for the owner's order with ``provider``.

    Raises NotFound for an unknown order or provider, AlreadyPaid when the
    order is not PENDING or already paid, GatewayError when the provider
    call fails.
    """
    gateway = get_gateway(provider)
    order = get_order(owner_id, order_id)
    order.assert_payable()

    intent = gateway.create_payable(order)
    logger.info(
        "payable_created",
        order_id=str(order.id),
        provider=provider,
        external_id=intent.external_id,
        provider_status=intent.provider_status,
    )

    current_domain.process(
        AttachPaymentReference(
            order_id=str(order.id),
            provider=provider,
            provider_order_id=intent.external_id,
            payment_intent_id=intent.payment_intent_id,
            details=json.dumps({**intent.raw, "provider_status": intent.provider_status}),
        ),
        asynchronous=False,
    )

    return PayableResponse(
        order_id=str(order.id),
        provider=provider,
        external_id=intent.external_id,
        redirect_url=intent.redirect_url,
        client_token=intent.client_token,
        provider_status=intent.provider_status,
    )
