"""OrderReconciler — the entry point every order mutation goes through.

Each operation takes the order's lock and processes its command inside it,
so the unit of work commits before the lock is released. Gateway status
polls run outside the lock and only their result is applied under it.
"""

import json

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from checkout.cart.conversion import ConvertCartToOrder
from checkout.domain import logger
from checkout.gateway import get_gateway
from checkout.order.cancellation import CancelOrder
from checkout.order.fulfillment import MarkProcessing, RecordDelivery, RecordShipment
from checkout.order.intent import find_intent
from checkout.order.locking import OrderLocks, order_locks
from checkout.order.order import PaymentMethod, ReconcileOutcome
from checkout.order.placement import CheckoutCart, PlaceOrder
from checkout.order.reconciliation import ApplyPaymentEvent, SyncPaymentStatus
from checkout.order.refunds import RecordRefund
from checkout.order.retry import RetryOrderPayment


def _unknown_intent(intent_id):
    return ObjectNotFoundError({"payment_intent_id": [f"Payment intent {intent_id} is not known"]})


class OrderReconciler:
    def __init__(self, locks: OrderLocks | None = None) -> None:
        self.locks = locks or order_locks

    def _process(self, order_id, command):
        with self.locks.hold(order_id):
            return current_domain.process(command, asynchronous=False)

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    def place_order(
        self,
        customer_id,
        lines,
        coupon_code=None,
        currency=None,
        payment_method=PaymentMethod.AIRWALLEX.value,
        request_id=None,
    ) -> dict:
        command = PlaceOrder(
            customer_id=customer_id,
            lines=json.dumps(lines),
            coupon_code=coupon_code,
            currency=currency,
            payment_method=payment_method,
            request_id=request_id,
        )
        if request_id:
            # Concurrent retries of one placement must not both persist an order
            return self._process(f"request:{request_id}", command)
        return current_domain.process(command, asynchronous=False)

    def checkout_cart(
        self,
        cart_id,
        customer_id,
        currency=None,
        payment_method=PaymentMethod.AIRWALLEX.value,
        request_id=None,
    ) -> dict:
        command = CheckoutCart(
            cart_id=cart_id,
            customer_id=customer_id,
            currency=currency,
            payment_method=payment_method,
            request_id=request_id,
        )
        with self.locks.hold(f"cart:{cart_id}"):
            result = current_domain.process(command, asynchronous=False)
            current_domain.process(
                ConvertCartToOrder(cart_id=cart_id, order_id=result["order_id"], request_id=result["request_id"]),
                asynchronous=False,
            )
        return result

    # -------------------------------------------------------------------
    # Payment events
    # -------------------------------------------------------------------
    def handle_event(self, event) -> ReconcileOutcome:
        """Apply a verified PaymentEvent to the order owning its intent.

        Raises ObjectNotFoundError when the intent is not ours (yet); the
        webhook transport answers 500 so the provider redelivers.
        """
        if not event.is_reconciled:
            logger.info("payment_event_ignored", event_type=event.type, intent_id=event.intent_id)
            return ReconcileOutcome.IGNORED

        record = find_intent(event.intent_id)
        if record is None:
            logger.warning("payment_event_unknown_intent", event_type=event.type, intent_id=event.intent_id)
            raise _unknown_intent(event.intent_id)

        reason = getattr(event.data, "failure_reason", None) or getattr(event.data, "reason", None)
        result = self._process(
            record.order_id,
            ApplyPaymentEvent(
                order_id=record.order_id,
                intent_id=event.intent_id,
                event_type=event.type,
                source="webhook",
                reason=str(reason) if reason else None,
            ),
        )
        return ReconcileOutcome(result)

    def sync_status(self, intent_id) -> dict:
        """Poll the provider for ``intent_id`` and reconcile the order with the answer."""
        record = find_intent(intent_id)
        if record is None:
            raise _unknown_intent(intent_id)

        status = get_gateway().get_intent_status(intent_id)
        result = self._process(
            record.order_id,
            SyncPaymentStatus(order_id=record.order_id, intent_id=intent_id, status=status.value),
        )
        return {
            "status": status.value,
            "order_id": str(record.order_id),
            "outcome": result,
        }

    # -------------------------------------------------------------------
    # Manual operations
    # -------------------------------------------------------------------
    def retry(self, order_id, actor) -> dict:
        return self._process(order_id, RetryOrderPayment(order_id=order_id, actor=actor))

    def cancel(self, order_id, reason, actor) -> None:
        self._process(order_id, CancelOrder(order_id=order_id, reason=reason, actor=actor))

    def mark_processing(self, order_id, actor=None) -> None:
        self._process(order_id, MarkProcessing(order_id=order_id, actor=actor))

    def record_shipment(self, order_id, carrier, tracking_number, actor=None) -> None:
        self._process(
            order_id,
            RecordShipment(order_id=order_id, carrier=carrier, tracking_number=tracking_number, actor=actor),
        )

    def record_delivery(self, order_id, actor=None) -> None:
        self._process(order_id, RecordDelivery(order_id=order_id, actor=actor))

    def record_refund(self, order_id, refund_request_id, amount, refunded_by) -> None:
        self._process(
            order_id,
            RecordRefund(
                order_id=order_id,
                refund_request_id=refund_request_id,
                amount=amount,
                refunded_by=refunded_by,
            ),
        )
