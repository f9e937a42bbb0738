"""Payment reconciliation — commands and handler.

Webhook deliveries and status-poll results both end up here, keyed the same
way, so whichever source arrives second is a no-op.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.gateway.port import IntentStatus
from checkout.order.intent import PaymentIntentRecord
from checkout.order.order import Order, ReconcileOutcome
from checkout.webhook.verifier import PAYMENT_CANCELLED, PAYMENT_FAILED, PAYMENT_SUCCEEDED

_EVENT_TYPE_FOR_STATUS = {
    IntentStatus.SUCCEEDED: PAYMENT_SUCCEEDED,
    IntentStatus.FAILED: PAYMENT_FAILED,
    IntentStatus.CANCELLED: PAYMENT_CANCELLED,
}

_STATUS_FOR_EVENT_TYPE = {event_type: status for status, event_type in _EVENT_TYPE_FOR_STATUS.items()}


@checkout.command(part_of="Order")
class ApplyPaymentEvent:
    """Apply a verified provider event to the order owning the intent."""

    order_id = Identifier(required=True)
    intent_id = String(required=True, max_length=255)
    event_type = String(required=True, max_length=100)
    source = String(max_length=20, default="webhook")
    reason = String(max_length=500)


@checkout.command(part_of="Order")
class SyncPaymentStatus:
    """Apply a status fetched from the provider (poll fallback)."""

    order_id = Identifier(required=True)
    intent_id = String(required=True, max_length=255)
    status = String(required=True, choices=IntentStatus)


def _observe(intent_id, status):
    repo = current_domain.repository_for(PaymentIntentRecord)
    record = repo.get(intent_id)
    record.observe(status)
    repo.add(record)


def _reconcile(order_id, intent_id, event_type, source, reason=None):
    repo = current_domain.repository_for(Order)
    order = repo.get(order_id)
    outcome = order.apply_payment_event(intent_id, event_type, source=source, reason=reason)

    log = logger.bind(order_id=str(order_id), intent_id=intent_id, event_type=event_type, source=source)
    if outcome == ReconcileOutcome.DUPLICATE:
        log.info("payment_event_duplicate")
        return outcome
    if outcome == ReconcileOutcome.IGNORED:
        log.info("payment_event_ignored")
        return outcome
    if outcome == ReconcileOutcome.ANOMALY:
        log.warning("payment_event_anomaly", order_status=order.status, requires_review=order.requires_review)
    else:
        log.info("payment_event_applied", order_status=order.status)

    repo.add(order)
    return outcome


@checkout.command_handler(part_of=Order)
class ReconcilePaymentHandler:
    @handle(ApplyPaymentEvent)
    def apply_payment_event(self, command):
        outcome = _reconcile(
            command.order_id,
            command.intent_id,
            command.event_type,
            command.source or "webhook",
            command.reason,
        )
        status = _STATUS_FOR_EVENT_TYPE.get(command.event_type)
        if status is not None and outcome in (ReconcileOutcome.APPLIED, ReconcileOutcome.ANOMALY):
            _observe(command.intent_id, status)
        return outcome.value

    @handle(SyncPaymentStatus)
    def sync_payment_status(self, command):
        status = IntentStatus(command.status)
        _observe(command.intent_id, status)

        event_type = _EVENT_TYPE_FOR_STATUS.get(status)
        if event_type is None:
            return ReconcileOutcome.IGNORED.value
        return _reconcile(command.order_id, command.intent_id, event_type, "poll").value
