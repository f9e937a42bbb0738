"""RefundWorkflow — request, approve, reject and audit refunds.

Approval is the only step that reaches the provider. The refund request id
is sent as the provider request id, so approving again after an ambiguous
failure (a timeout, say) can never refund twice; operators can also call
``check_status`` on completed refunds to read the provider's view.
"""

from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.gateway import get_gateway
from checkout.order.locking import OrderLocks, order_locks
from checkout.order.order import Order
from checkout.order.reconciler import OrderReconciler
from checkout.refund.refund_request import RefundRequest, RefundStatus
from checkout.shared.exceptions import StateConflictError
from checkout.shared.money import to_decimal


@checkout.command(part_of="RefundRequest")
class RequestRefund:
    order_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(required=True, max_length=500)
    requested_by = String(required=True, max_length=255)


@checkout.command(part_of="RefundRequest")
class ApproveRefund:
    refund_id = Identifier(required=True)
    approved_by = String(required=True, max_length=255)


@checkout.command(part_of="RefundRequest")
class RejectRefund:
    refund_id = Identifier(required=True)
    rejected_by = String(required=True, max_length=255)
    reason = String(required=True, max_length=500)


@checkout.command(part_of="RefundRequest")
class CheckRefundStatus:
    refund_id = Identifier(required=True)


@checkout.command_handler(part_of=RefundRequest)
class RefundHandler:
    @handle(RequestRefund)
    def request_refund(self, command):
        order = current_domain.repository_for(Order).get(command.order_id)
        order.assert_refundable(command.amount)

        refund = RefundRequest.create(
            order_id=command.order_id,
            payment_intent_id=order.paid_intent_id,
            amount=command.amount,
            reason=command.reason,
            requested_by=command.requested_by,
        )
        current_domain.repository_for(RefundRequest).add(refund)
        return str(refund.id)

    @handle(ApproveRefund)
    def approve_refund(self, command):
        repo = current_domain.repository_for(RefundRequest)
        refund = repo.get(command.refund_id)
        refund.assert_pending()

        order = current_domain.repository_for(Order).get(refund.order_id)
        order.assert_refundable(refund.amount)

        result = get_gateway().create_refund(
            intent_id=refund.payment_intent_id,
            amount=to_decimal(refund.amount),
            reason=refund.reason,
            request_id=str(refund.id),
        )
        refund.complete(
            gateway_refund_id=result.id,
            gateway_status=result.status,
            approved_by=command.approved_by,
        )
        repo.add(refund)
        return {"refund_id": str(refund.id), "gateway_refund_id": result.id, "status": refund.status}

    @handle(RejectRefund)
    def reject_refund(self, command):
        repo = current_domain.repository_for(RefundRequest)
        refund = repo.get(command.refund_id)
        refund.reject(rejected_by=command.rejected_by, reason=command.reason)
        repo.add(refund)

    @handle(CheckRefundStatus)
    def check_refund_status(self, command):
        repo = current_domain.repository_for(RefundRequest)
        refund = repo.get(command.refund_id)
        if RefundStatus(refund.status) != RefundStatus.COMPLETED:
            raise StateConflictError({"status": [f"Refund request is {refund.status}; nothing was sent to the provider"]})

        info = get_gateway().get_refund_status(refund.gateway_refund_id, refund.payment_intent_id)
        refund.mirror_gateway_status(info.status)
        repo.add(refund)
        return {
            "refund_id": str(refund.id),
            "gateway_refund_id": info.id,
            "status": info.status,
            "amount": float(info.amount),
            "created_at": str(info.created_at) if info.created_at else None,
        }


class RefundWorkflow:
    def __init__(self, locks: OrderLocks | None = None) -> None:
        self.locks = locks or order_locks
        self.reconciler = OrderReconciler(self.locks)

    def request(self, order_id, amount, reason, requested_by) -> str:
        command = RequestRefund(order_id=order_id, amount=amount, reason=reason, requested_by=requested_by)
        with self.locks.hold(order_id):
            return current_domain.process(command, asynchronous=False)

    def approve(self, refund_id, approved_by) -> dict:
        refund = current_domain.repository_for(RefundRequest).get(refund_id)
        with self.locks.hold(refund.order_id):
            try:
                result = current_domain.process(
                    ApproveRefund(refund_id=refund_id, approved_by=approved_by),
                    asynchronous=False,
                )
            except Exception:
                logger.exception("refund_approval_failed", refund_id=str(refund_id), order_id=str(refund.order_id))
                raise

            self.reconciler.record_refund(
                order_id=refund.order_id,
                refund_request_id=refund_id,
                amount=refund.amount,
                refunded_by=approved_by,
            )
        logger.info(
            "refund_completed",
            refund_id=str(refund_id),
            order_id=str(refund.order_id),
            gateway_refund_id=result["gateway_refund_id"],
        )
        return result

    def reject(self, refund_id, rejected_by, reason) -> None:
        current_domain.process(
            RejectRefund(refund_id=refund_id, rejected_by=rejected_by, reason=reason),
            asynchronous=False,
        )

    def check_status(self, refund_id) -> dict:
        return current_domain.process(CheckRefundStatus(refund_id=refund_id), asynchronous=False)
