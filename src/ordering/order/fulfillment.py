"""Order fulfilment: cancellation and shipping progress commands.

Cancellation does not return stock to the catalog; restocking is a manual
catalog operation.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@ordering.command(part_of="Order")
class StartProcessing:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class ShipOrder:
    order_id = Identifier(required=True)
    tracking_number = String(max_length=100)


@ordering.command(part_of="Order")
class DeliverOrder:
    order_id = Identifier(required=True)


@ordering.command_handler(part_of=Order)
class OrderFulfillmentHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.cancel(reason=command.reason):
            repo.add(order)

    @handle(StartProcessing)
    def start_processing(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.start_processing():
            repo.add(order)

    @handle(ShipOrder)
    def ship_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.ship(tracking_number=command.tracking_number):
            repo.add(order)

    @handle(DeliverOrder)
    def deliver_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.deliver():
            repo.add(order)
