"""Return-flow capture: the customer came back from the provider's page.

This races the provider's webhook for the same payment. Both paths apply
the same RecordPaymentCaptured command, whose transition is a no-op when
the order is already PAID, so whichever arrives second changes nothing.
"""

import json

import structlog
from protean.utils.globals import current_domain

from ordering.errors import InvalidTransition, NotFound
from ordering.gateway import get_gateway
from ordering.order.payment import RecordPaymentCaptured, RecordPaymentFailed
from ordering.order.queries import get_order

logger = structlog.get_logger(__name__)


def capture_payment(owner_id, order_id, provider, external_id):
    """Capture the payable ``external_id`` and record the outcome on the order.

    Returns the refreshed Order. Raises AlreadyPaid before contacting the
    provider when the order is no longer PENDING or its payment is settled.
    """
    gateway = get_gateway(provider)
    order = get_order(owner_id, order_id)

    if order.payment_provider != provider or order.provider_order_id != external_id:
        raise NotFound("payment", external_id)
    order.assert_payable()

    result = gateway.capture(external_id)
    logger.info(
        "payment_capture_result",
        order_id=str(order.id),
        provider=provider,
        captured=result.captured,
        provider_status=result.provider_status,
    )

    details = json.dumps({**result.raw, "capture_status": result.provider_status})
    if result.captured:
        command = RecordPaymentCaptured(
            order_id=str(order.id),
            provider=provider,
            capture_id=result.capture_id,
            amount=result.captured_amount,
            details=details,
        )
    elif (result.provider_status or "").upper() in ("DECLINED", "FAILED", "VOIDED"):
        command = RecordPaymentFailed(
            order_id=str(order.id),
            provider=provider,
            reason=f"Capture {result.provider_status}",
            details=details,
        )
    else:
        command = None

    if command is not None:
        try:
            current_domain.process(command, asynchronous=False)
        except InvalidTransition as exc:
            # A webhook settled the payment while we were capturing
            logger.info("capture_outcome_superseded", order_id=str(order.id), reason=exc.message)

    return get_order(owner_id, order_id)
