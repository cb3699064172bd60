"""Webhook event ledger: at-most-once application of provider events.

Each (provider, external event id) pair has exactly one ledger entry, keyed
``"<provider>:<event id>"``. A delivery must claim the entry before applying
side effects:

- no entry yet: insert it claimed, the caller proceeds;
- entry processed: the event was already applied, the caller answers 2xx;
- entry claimed and the claim is younger than the lease: another delivery
  is applying it right now, the caller asks the provider to retry later;
- entry released, or claimed longer ago than the lease (the worker died):
  re-claim it, the caller proceeds.

Get-or-insert runs inside one process-wide critical section. On relational
providers the entry's primary key also rejects a second concurrent insert
from another process.

Entries are never deleted.
"""

import threading
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.settings import get_settings

logger = structlog.get_logger(__name__)

_claim_lock = threading.Lock()


class ClaimOutcome(Enum):
    CLAIMED = "claimed"
    ALREADY_PROCESSED = "already_processed"
    IN_FLIGHT = "in_flight"


@ordering.aggregate
class WebhookEvent:
    event_key = String(identifier=True, max_length=300)
    provider = String(required=True, max_length=20)
    external_event_id = String(required=True, max_length=255)
    event_type = String(max_length=100)
    processed = Boolean(default=False)
    claimed_at = DateTime()
    processed_at = DateTime()
    attempts = Integer(default=0)
    last_error = String(max_length=1000)
    payload = Text()  # Raw body, kept for audit


def ledger_key(provider, external_event_id) -> str:
    return f"{provider}:{external_event_id}"


def _aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _get(key):
    try:
        return current_domain.repository_for(WebhookEvent).get(key)
    except ObjectNotFoundError:
        return None


def claim(provider, external_event_id, event_type=None, payload=None) -> ClaimOutcome:
    """Atomically claim an event for processing."""
    key = ledger_key(provider, external_event_id)
    lease = timedelta(seconds=get_settings().webhook_claim_lease_seconds)
    repo = current_domain.repository_for(WebhookEvent)

    with _claim_lock:
        now = datetime.now(UTC)
        entry = _get(key)

        if entry is None:
            repo.add(
                WebhookEvent(
                    event_key=key,
                    provider=provider,
                    external_event_id=external_event_id,
                    event_type=event_type,
                    processed=False,
                    claimed_at=now,
                    attempts=1,
                    payload=payload,
                )
            )
            return ClaimOutcome.CLAIMED

        if entry.processed:
            return ClaimOutcome.ALREADY_PROCESSED

        claimed_at = _aware(entry.claimed_at)
        if claimed_at is not None and now - claimed_at < lease:
            return ClaimOutcome.IN_FLIGHT

        if claimed_at is not None:
            logger.warning("webhook_claim_expired", event_key=key, claimed_at=claimed_at.isoformat())
        entry.claimed_at = now
        entry.attempts = (entry.attempts or 0) + 1
        repo.add(entry)
        return ClaimOutcome.CLAIMED


def mark_processed(provider, external_event_id, error=None) -> None:
    """Close the entry. ``error`` records a permanent failure (the event is not retried)."""
    key = ledger_key(provider, external_event_id)
    repo = current_domain.repository_for(WebhookEvent)
    with _claim_lock:
        entry = repo.get(key)
        entry.processed = True
        entry.processed_at = datetime.now(UTC)
        entry.last_error = error[:1000] if error else None
        repo.add(entry)


def release(provider, external_event_id, error=None) -> None:
    """Drop the claim so that the next delivery of this event can retry it."""
    key = ledger_key(provider, external_event_id)
    repo = current_domain.repository_for(WebhookEvent)
    with _claim_lock:
        entry = repo.get(key)
        entry.claimed_at = None
        entry.last_error = error[:1000] if error else None
        repo.add(entry)
