"""Fraud guard: authorization and field preconditions for status transitions.

A pure check with no side effects, consulted before every status change.
It runs three gates in a fixed order and raises at the first failure:

1. the target must be reachable from the current status (InvalidTransition)
2. the actor must hold the role and ownership the target demands (Unauthorized)
3. shipping needs a tracking number, delivery needs proof (InvalidArgument)
"""

from marketplace.errors import InvalidArgument, InvalidTransition, Unauthorized
from marketplace.identity.auth import AuthContext
from marketplace.order.order import TRANSITIONS, Order, OrderStatus


def check_transition(
    current_status: OrderStatus,
    target_status: OrderStatus,
    actor: AuthContext,
    order: Order,
    tracking_number: str | None = None,
    proof_of_delivery: str | None = None,
) -> None:
    _check_reachable(current_status, target_status)
    _check_actor(current_status, target_status, actor, order)
    _check_fields(current_status, target_status, tracking_number, proof_of_delivery)


def _check_reachable(current_status: OrderStatus, target_status: OrderStatus) -> None:
    if target_status not in TRANSITIONS[current_status]:
        raise InvalidTransition(f"Cannot transition from {current_status.value} to {target_status.value}")


def _check_actor(current_status: OrderStatus, target_status: OrderStatus, actor: AuthContext, order: Order) -> None:
    if target_status == OrderStatus.REFUNDED:
        if not actor.is_admin:
            raise Unauthorized("Only an admin can refund an order")
        return

    if target_status == OrderStatus.CANCELLED and current_status == OrderStatus.PENDING:
        if actor.uid != str(order.buyer_id):
            raise Unauthorized("Only the buyer can cancel a pending order")
        return

    # Fulfilment steps, and cancelling an order the seller already confirmed
    if not _is_owning_seller(actor, order):
        raise Unauthorized(f"Only the order's verified seller can mark it {target_status.value}")


def _check_fields(
    current_status: OrderStatus,
    target_status: OrderStatus,
    tracking_number: str | None,
    proof_of_delivery: str | None,
) -> None:
    if target_status == OrderStatus.SHIPPED and _blank(tracking_number):
        raise InvalidArgument("tracking number required")

    if target_status == OrderStatus.DELIVERED and (_blank(proof_of_delivery) or current_status != OrderStatus.SHIPPED):
        raise InvalidArgument("proof of delivery required")


def _is_owning_seller(actor: AuthContext, order: Order) -> bool:
    return actor.is_verified_seller and actor.uid == str(order.seller_id)


def _blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()
