"""Payment retry — command and handler.

A failed or provider-cancelled order gets a new attempt: a fresh intent is
opened for the same order and amount, and the order returns to pending.
The request id is derived from the attempt number so a retried call after
a timeout reaches the same provider intent.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.gateway import get_gateway
from checkout.order.intent import PaymentIntentRecord
from checkout.order.order import Order


@checkout.command(part_of="Order")
class RetryOrderPayment:
    order_id = Identifier(required=True)
    actor = String(required=True, max_length=255)


@checkout.command_handler(part_of=Order)
class RetryOrderPaymentHandler:
    @handle(RetryOrderPayment)
    def retry_order_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.assert_retryable()

        attempt_number = len(order.payment_attempts or []) + 1
        intent = get_gateway().create_intent(
            order_id=str(order.id),
            amount=order.total,
            currency=order.pricing.currency,
            request_id=f"{order.id}:attempt-{attempt_number}",
        )
        order.retry_payment(intent_id=intent.id, actor=command.actor)
        repo.add(order)
        current_domain.repository_for(PaymentIntentRecord).add(
            PaymentIntentRecord.mirror(intent, order.id, attempt_number=attempt_number)
        )

        logger.info(
            "payment_retry_started",
            order_id=str(order.id),
            intent_id=intent.id,
            attempt=attempt_number,
            actor=command.actor,
        )
        return {
            "order_id": str(order.id),
            "payment_intent_id": intent.id,
            "client_secret": intent.client_secret,
            "attempt_number": attempt_number,
        }
