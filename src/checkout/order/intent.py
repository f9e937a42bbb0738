"""PaymentIntentRecord — the local, last-known mirror of a provider intent.

The provider is the source of truth for an intent's status. The mirror
exists to route webhooks and polls (intent id → order id) and to hand the
client secret back to the hosted payment flow.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.gateway.port import IntentStatus


@checkout.aggregate
class PaymentIntentRecord:
    intent_id = Identifier(identifier=True, required=True)
    order_id = Identifier(required=True)
    client_secret = String(max_length=500)
    status = String(choices=IntentStatus, default=IntentStatus.INITIAL.value)
    amount = Float(required=True, min_value=0.0)
    currency = String(required=True, max_length=3)
    attempt_number = Integer(default=1)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def mirror(cls, intent, order_id, attempt_number=1):
        now = datetime.now(UTC)
        return cls(
            intent_id=intent.id,
            order_id=str(order_id),
            client_secret=intent.client_secret,
            status=intent.status.value,
            amount=float(intent.amount),
            currency=intent.currency,
            attempt_number=attempt_number,
            created_at=now,
            updated_at=now,
        )

    def observe(self, status: IntentStatus):
        """Record the latest status seen from the provider."""
        if self.status != status.value:
            self.status = status.value
            self.updated_at = datetime.now(UTC)


def find_intent(intent_id):
    """Return the mirror for ``intent_id`` or None when it is not ours."""
    try:
        return current_domain.repository_for(PaymentIntentRecord).get(intent_id)
    except ObjectNotFoundError:
        return None
