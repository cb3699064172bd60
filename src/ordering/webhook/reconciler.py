"""Webhook reconciliation: apply provider payment events to orders.

Providers deliver at least once, in any order, and retry anything that is
not answered with a 2xx. For each delivery:

1. verify the signature (400 on failure, without saying why);
2. claim the event in the ledger (200 if already processed, 409 if another
   delivery holds the claim);
3. resolve the order from the event's references (422 if none matches, and
   the event is closed so the provider stops retrying);
4. apply the matching payment command; a transition that would regress the
   payment status is logged and treated as a no-op;
5. mark the event processed once the order update has committed.

A failure during 3-5 releases the claim. Transient failures answer 503 so
the provider re-delivers.
"""

import json
from dataclasses import dataclass

import structlog
from protean.exceptions import DatabaseError, ExpectedVersionError, TransactionError
from protean.utils.globals import current_domain

from ordering.errors import GatewayError, InvalidSignature, InvalidTransition, TransientStorageError, UnresolvedCorrelation
from ordering.gateway import get_gateway
from ordering.gateway.port import EventKind
from ordering.order.payment import (
    RecordPaymentCaptured,
    RecordPaymentFailed,
    RecordPaymentMetadata,
    RecordPaymentRefunded,
)
from ordering.order.queries import find_order_by_reference
from ordering.settings import get_settings
from ordering.webhook import ledger
from ordering.webhook.ledger import ClaimOutcome

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class WebhookOutcome:
    status_code: int
    detail: str


def _command_for(event, order_id):
    details = json.dumps(event.details) if event.details else None
    if event.kind == EventKind.CAPTURED:
        return RecordPaymentCaptured(
            order_id=order_id,
            provider=event.provider,
            capture_id=event.capture_id,
            amount=event.amount,
            details=details,
        )
    if event.kind == EventKind.FAILED:
        return RecordPaymentFailed(order_id=order_id, provider=event.provider, reason=event.reason, details=details)
    if event.kind == EventKind.REFUNDED:
        return RecordPaymentRefunded(
            order_id=order_id,
            provider=event.provider,
            refund_id=event.refund_id,
            amount=event.amount,
            details=details,
        )
    return RecordPaymentMetadata(order_id=order_id, details=details or json.dumps({}))


def apply_event(event) -> str:
    """Apply a normalized provider event to its order. Returns a short outcome label."""
    if event.kind == EventKind.IGNORED:
        logger.info("webhook_event_ignored", provider=event.provider, event_type=event.event_type)
        return "ignored"

    references = event.references()
    order = find_order_by_reference(**references)
    if order is None:
        raise UnresolvedCorrelation(event.provider, references)

    attempts = get_settings().storage_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            changed = current_domain.process(_command_for(event, str(order.id)), asynchronous=False)
        except ExpectedVersionError:
            logger.warning("webhook_apply_conflict", order_id=str(order.id), attempt=attempt)
            continue
        except (DatabaseError, TransactionError) as exc:
            logger.warning("webhook_apply_storage_error", order_id=str(order.id), attempt=attempt, error=str(exc))
            continue
        except InvalidTransition as exc:
            if event.kind == EventKind.REFUNDED:
                # Refund overtook its capture; let the provider redeliver it later
                logger.info("webhook_refund_deferred", order_id=str(order.id), payment_status=exc.current)
                return "deferred"
            logger.info(
                "webhook_transition_ignored",
                provider=event.provider,
                event_id=event.event_id,
                order_id=str(order.id),
                reason=exc.message,
            )
            return "noop"
        return "applied" if changed else "noop"

    raise TransientStorageError("apply_webhook", attempts=attempts)


def handle_webhook(provider, raw_body: bytes, headers) -> WebhookOutcome:
    """Verify, deduplicate and apply one webhook delivery.

    Returns the HTTP status the provider should receive. Raises NotFound for
    an unknown provider.
    """
    gateway = get_gateway(provider)
    headers = {key.lower(): value for key, value in dict(headers).items()}

    try:
        verified = gateway.verify_webhook(raw_body, headers)
    except ValueError:
        verified = False
    except GatewayError as exc:
        logger.error("webhook_verification_unavailable", provider=provider, error=exc.message)
        return WebhookOutcome(503, "Verification unavailable, retry later")

    if not verified:
        logger.warning("webhook_rejected", provider=provider, code=InvalidSignature.code)
        return WebhookOutcome(400, "Invalid webhook")

    try:
        event = gateway.parse_webhook(raw_body)
    except (ValueError, KeyError, TypeError) as exc:
        logger.warning("webhook_malformed", provider=provider, error=str(exc))
        return WebhookOutcome(400, "Malformed webhook payload")
    if not event.event_id:
        logger.warning("webhook_missing_event_id", provider=provider, event_type=event.event_type)
        return WebhookOutcome(400, "Malformed webhook payload")

    log = logger.bind(provider=provider, event_id=event.event_id, event_type=event.event_type)

    outcome = ledger.claim(provider, event.event_id, event.event_type, raw_body.decode("utf-8", errors="replace"))
    if outcome == ClaimOutcome.ALREADY_PROCESSED:
        log.info("webhook_duplicate")
        return WebhookOutcome(200, "Already processed")
    if outcome == ClaimOutcome.IN_FLIGHT:
        log.info("webhook_in_flight")
        return WebhookOutcome(409, "Event is being processed, retry later")

    try:
        result = apply_event(event)
    except UnresolvedCorrelation as exc:
        log.warning("webhook_unresolved", references=exc.references)
        ledger.mark_processed(provider, event.event_id, error=exc.message)
        return WebhookOutcome(422, "Unknown order reference")
    except (TransientStorageError, GatewayError) as exc:
        log.error("webhook_apply_failed", error=exc.message)
        ledger.release(provider, event.event_id, error=exc.message)
        return WebhookOutcome(503, "Temporary failure, retry later")
    except Exception as exc:
        log.exception("webhook_apply_crashed")
        ledger.release(provider, event.event_id, error=repr(exc))
        raise

    if result == "deferred":
        ledger.release(provider, event.event_id, error="refund received before capture")
        return WebhookOutcome(409, "Order not yet paid, retry later")

    ledger.mark_processed(provider, event.event_id)
    log.info("webhook_processed", result=result)
    return WebhookOutcome(200, result)
