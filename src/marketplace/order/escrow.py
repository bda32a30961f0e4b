"""Escrow simulator: custody of buyer funds, gated by the order's status.

No money moves. ``SimulatePayment`` records that a mobile-wallet payment was
captured and is held on the platform; ``ReleaseEscrow`` records that the
held funds went to the seller, which is only allowed once the order has been
delivered. Cash-on-delivery orders enter escrow when they are marked
delivered, see ``Order.transition_to``.

Both commands may be issued without an actor, by the payment gateway or a
scheduled job; the history then names the system as the actor.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import (
    AlreadyPaid,
    EscrowNotReleasable,
    InvalidArgument,
    InvalidTransition,
    Unauthorized,
)
from marketplace.identity.auth import actor_from
from marketplace.order.order import (
    PAYABLE_STATUSES,
    EscrowStatus,
    Order,
    OrderStatus,
    PaymentMethod,
)
from marketplace.order.queries import load_order

logger = structlog.get_logger(__name__)

SYSTEM_ACTOR = "system"


@marketplace.command(part_of="Order")
class SimulatePayment:
    order_id = Identifier(required=True)
    actor_id = String(max_length=128)
    actor_role = String(max_length=20)
    actor_verification_status = String(max_length=20)
    transaction_id = String(max_length=255)
    receipt_id = String(max_length=255)


@marketplace.command(part_of="Order")
class ReleaseEscrow:
    order_id = Identifier(required=True)
    actor_id = String(max_length=128)
    actor_role = String(max_length=20)
    actor_verification_status = String(max_length=20)


@marketplace.command_handler(part_of=Order)
class EscrowHandler:
    @handle(SimulatePayment)
    def simulate_payment(self, command):
        """Mark the order's payment as captured and held in escrow.

        When an actor is given it must be the order's buyer.
        """
        actor = actor_from(command)
        order = load_order(command.order_id)
        order_id = str(order.id)

        if actor is not None and actor.uid != str(order.buyer_id):
            raise Unauthorized("You can only confirm payment for your own orders")
        if order.escrow_status != EscrowStatus.NONE.value:
            raise AlreadyPaid(f"Order {order_id} is already paid")
        if OrderStatus(order.status) not in PAYABLE_STATUSES:
            raise InvalidTransition(f"Payment cannot be captured for a {order.status} order")
        if order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value:
            raise InvalidArgument("Cash on delivery is collected on delivery, not through payment simulation")

        try:
            order.hold_payment(
                actor_id=actor.uid if actor else SYSTEM_ACTOR,
                at=current_domain.clock.now(),
                transaction_id=command.transaction_id,
                receipt_id=command.receipt_id,
            )
        except ValidationError as exc:
            raise AlreadyPaid(f"Order {order_id} is already paid") from exc

        current_domain.repository_for(Order).add(order)
        logger.info(
            "Payment held in escrow",
            order_id=order_id,
            amount=order.total_amount,
            payment_method=order.payment_method,
            transaction_id=order.payment_confirmation.transaction_id,
        )
        return order

    @handle(ReleaseEscrow)
    def release_escrow(self, command):
        """Pay the held funds out to the seller of a delivered order.

        When an actor is given it must be an admin.
        """
        actor = actor_from(command)
        order = load_order(command.order_id)

        if actor is not None and not actor.is_admin:
            raise Unauthorized("Only admins can release escrow")
        if OrderStatus(order.status) != OrderStatus.DELIVERED:
            raise EscrowNotReleasable("Order must be delivered before releasing escrow")
        if order.escrow_status == EscrowStatus.RELEASED.value:
            raise EscrowNotReleasable("Escrow already released for this order")
        if order.escrow_status != EscrowStatus.HELD.value:
            raise EscrowNotReleasable("Order payment must be confirmed before releasing escrow")

        released_by = actor.uid if actor else SYSTEM_ACTOR
        order.release_escrow(released_by=released_by, at=current_domain.clock.now())

        current_domain.repository_for(Order).add(order)
        logger.info(
            "Escrow released",
            order_id=str(order.id),
            seller_id=str(order.seller_id),
            amount=order.total_amount,
            released_by=released_by,
        )
        return order
