"""Order refund — command and handler.

Driven by the refund workflow once the provider accepted a refund.
"""

from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import Order


@checkout.command(part_of="Order")
class RecordRefund:
    order_id = Identifier(required=True)
    refund_request_id = Identifier(required=True)
    amount = Float(required=True)
    refunded_by = String(required=True, max_length=255)


@checkout.command_handler(part_of=Order)
class RecordRefundHandler:
    @handle(RecordRefund)
    def record_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_refund(
            refund_request_id=command.refund_request_id,
            amount=command.amount,
            refunded_by=command.refunded_by,
        )
        repo.add(order)
