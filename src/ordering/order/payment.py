"""Order payment: commands and handler.

These are the only writers of payment fields on an Order. Each handler
returns True when the order changed and False when it was already in the
requested state, so replays of the same provider fact are harmless.
"""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


def _details(command):
    return json.loads(command.details) if command.details else None


@ordering.command(part_of="Order")
class AttachPaymentReference:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=20)
    payment_intent_id = String(max_length=255)
    provider_order_id = String(max_length=255)
    details = Text()  # JSON


@ordering.command(part_of="Order")
class RecordPaymentCaptured:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=20)
    capture_id = String(max_length=255)
    amount = Float()
    details = Text()  # JSON


@ordering.command(part_of="Order")
class RecordPaymentFailed:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=20)
    reason = String(max_length=500)
    details = Text()  # JSON


@ordering.command(part_of="Order")
class RecordPaymentRefunded:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=20)
    refund_id = String(max_length=255)
    amount = Float()
    details = Text()  # JSON


@ordering.command(part_of="Order")
class RecordPaymentMetadata:
    order_id = Identifier(required=True)
    details = Text(required=True)  # JSON


@ordering.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(AttachPaymentReference)
    def attach_payment_reference(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.attach_payment_reference(
            provider=command.provider,
            payment_intent_id=command.payment_intent_id,
            provider_order_id=command.provider_order_id,
            metadata=_details(command),
        )
        if changed:
            repo.add(order)
        return changed

    @handle(RecordPaymentCaptured)
    def record_payment_captured(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.mark_paid(
            provider=command.provider,
            capture_id=command.capture_id,
            amount=command.amount,
            metadata=_details(command),
        )
        if changed:
            repo.add(order)
        return changed

    @handle(RecordPaymentFailed)
    def record_payment_failed(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.mark_payment_failed(
            provider=command.provider,
            reason=command.reason,
            metadata=_details(command),
        )
        if changed:
            repo.add(order)
        return changed

    @handle(RecordPaymentRefunded)
    def record_payment_refunded(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.mark_refunded(
            provider=command.provider,
            refund_id=command.refund_id,
            amount=command.amount,
            metadata=_details(command),
        )
        if changed:
            repo.add(order)
        return changed

    @handle(RecordPaymentMetadata)
    def record_payment_metadata(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_payment_metadata(json.loads(command.details))
        repo.add(order)
        return True
