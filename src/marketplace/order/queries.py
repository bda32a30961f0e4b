"""Read-side access to orders, scoped to the calling actor."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.errors import InvalidArgument, NotFound, Unauthenticated, Unauthorized
from marketplace.identity.auth import AuthContext
from marketplace.order.order import Order, StatusChange


def load_order(order_id: str) -> Order:
    if not order_id:
        raise InvalidArgument("order id required")
    try:
        return current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError as exc:
        raise NotFound(f"Order {order_id} not found") from exc


def get_order_by_id(order_id: str, actor: AuthContext | None) -> Order:
    _require_actor(actor)
    order = load_order(order_id)
    if not (actor.is_admin or order.involves(actor.uid)):
        raise Unauthorized("You can only view your own orders")
    return order


def get_user_orders(actor: AuthContext | None) -> list[Order]:
    """Orders the actor bought (buyers) or sells (sellers), newest first."""
    _require_actor(actor)
    if actor.is_buyer:
        criteria = {"buyer_id": actor.uid}
    elif actor.is_seller:
        criteria = {"seller_id": actor.uid}
    else:
        raise InvalidArgument("User must have a valid role (buyer or seller)")

    repo = current_domain.repository_for(Order)
    orders = repo._dao.query.filter(**criteria).limit(None).all().items

    # Results come back in insertion order; equal timestamps keep the latest first
    orders = list(reversed(orders))
    orders.sort(key=lambda order: order.created_at, reverse=True)
    return orders


def get_order_logs(order_id: str, actor: AuthContext | None) -> list[StatusChange]:
    """Chronological audit trail of an order, for dispute resolution by admins."""
    _require_actor(actor)
    if not actor.is_admin:
        raise Unauthorized("Only admins can view order audit logs")
    order = load_order(order_id)
    return sorted(order.status_history, key=lambda change: change.at)


def _require_actor(actor: AuthContext | None) -> None:
    if actor is None:
        raise Unauthenticated()
