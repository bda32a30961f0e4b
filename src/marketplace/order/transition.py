"""Order status updates: command and handler.

A status change passes the fraud guard, then saves the order against the
version that was read. Cancelling or refunding hands the reserved units back
to stock in the same unit of work.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import InvalidArgument, Unauthenticated, describe
from marketplace.identity.auth import actor_from
from marketplace.inventory.ledger import StockRequest, return_stock
from marketplace.order.fraud_guard import check_transition
from marketplace.order.order import Order, OrderStatus
from marketplace.order.queries import load_order

logger = structlog.get_logger(__name__)

# Leaving the order through these statuses hands reserved units back to stock
_RESTOCKING_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}


@marketplace.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    actor_id = String(max_length=128)
    actor_role = String(max_length=20)
    actor_verification_status = String(max_length=20)
    status = String(max_length=50)
    tracking_number = String(max_length=255)
    proof_of_delivery = String(max_length=1000)
    note = String(max_length=500)


@marketplace.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        actor = actor_from(command)
        if actor is None:
            raise Unauthenticated()
        target = _order_status(command.status)

        order = load_order(command.order_id)
        current = OrderStatus(order.status)

        check_transition(
            current,
            target,
            actor,
            order,
            tracking_number=command.tracking_number,
            proof_of_delivery=command.proof_of_delivery,
        )

        try:
            order.transition_to(
                target,
                actor_id=actor.uid,
                at=current_domain.clock.now(),
                tracking_number=command.tracking_number,
                proof_of_delivery=command.proof_of_delivery,
                note=command.note,
            )
        except ValidationError as exc:
            raise InvalidArgument(describe(exc)) from exc

        current_domain.repository_for(Order).add(order)

        if target in _RESTOCKING_STATUSES:
            returned = [StockRequest(str(item.product_id), item.quantity) for item in order.items]
            return_stock(returned)
            logger.info("Stock restored", order_id=str(order.id), units=sum(r.quantity for r in returned))

        logger.info(
            "Order status updated",
            order_id=str(order.id),
            actor_id=actor.uid,
            old_status=current.value,
            new_status=target.value,
            version=order.version,
        )
        return order


def _order_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidArgument(f"Invalid order status: {value!r}") from None
