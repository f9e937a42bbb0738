"""Order fulfillment — commands and handler.

Processing, shipment and delivery of paid orders.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import Order


@checkout.command(part_of="Order")
class MarkProcessing:
    order_id = Identifier(required=True)
    actor = String(max_length=255)


@checkout.command(part_of="Order")
class RecordShipment:
    order_id = Identifier(required=True)
    carrier = String(required=True, max_length=100)
    tracking_number = String(required=True, max_length=255)
    actor = String(max_length=255)


@checkout.command(part_of="Order")
class RecordDelivery:
    order_id = Identifier(required=True)
    actor = String(max_length=255)


@checkout.command_handler(part_of=Order)
class FulfillmentHandler:
    @handle(MarkProcessing)
    def mark_processing(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.mark_processing(actor=command.actor)
        repo.add(order)

    @handle(RecordShipment)
    def record_shipment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_shipment(
            carrier=command.carrier,
            tracking_number=command.tracking_number,
            actor=command.actor,
        )
        repo.add(order)

    @handle(RecordDelivery)
    def record_delivery(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_delivery(actor=command.actor)
        repo.add(order)
