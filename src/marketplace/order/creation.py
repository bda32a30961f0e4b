"""Order creation: command and handler.

Creation snapshots catalog prices, reserves stock and stores the order in a
single unit of work: either the stock is gone and the order exists, or
neither happened.
"""

import json
from collections.abc import Mapping

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import InvalidArgument, Unauthenticated, Unauthorized, describe
from marketplace.identity.auth import actor_from
from marketplace.inventory.ledger import StockRequest, fetch_product, take_stock
from marketplace.order.order import Order, PaymentMethod

logger = structlog.get_logger(__name__)

_ADDRESS_FIELDS = ("street", "city", "phone")


@marketplace.command(part_of="Order")
class CreateOrder:
    actor_id = String(max_length=128)
    actor_role = String(max_length=20)
    actor_verification_status = String(max_length=20)
    seller_id = String(max_length=128)
    items = Text()  # JSON: list of {product_id, quantity}
    payment_method = String(max_length=50)
    delivery_address = Text()  # JSON: address dict


@marketplace.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        buyer = actor_from(command)
        if buyer is None:
            raise Unauthenticated()
        if not buyer.is_buyer:
            raise Unauthorized("Only buyers can place orders")

        seller_id = (command.seller_id or "").strip()
        if not seller_id:
            raise InvalidArgument("seller id required")
        if buyer.uid == seller_id:
            raise InvalidArgument("buyer and seller must be different users")

        requests = _stock_requests(_decoded(command.items))
        method = _payment_method(command.payment_method)
        address = _delivery_address(_decoded(command.delivery_address))

        lines = []
        for request in requests:
            product = fetch_product(request.product_id)
            if str(product.seller_id) != seller_id:
                raise InvalidArgument(f"Product {request.product_id} does not belong to seller {seller_id}")
            lines.append(
                {
                    "product_id": request.product_id,
                    "name": product.name,
                    "price": product.price,
                    "quantity": request.quantity,
                }
            )

        try:
            order = Order.place(
                buyer_id=buyer.uid,
                seller_id=seller_id,
                lines=lines,
                payment_method=method.value,
                delivery_address=address,
                placed_at=current_domain.clock.now(),
            )
        except ValidationError as exc:
            raise InvalidArgument(describe(exc)) from exc

        take_stock(requests)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Order created",
            order_id=str(order.id),
            buyer_id=buyer.uid,
            seller_id=seller_id,
            total_amount=order.total_amount,
            payment_method=method.value,
            line_count=len(lines),
        )
        return str(order.id)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
def _decoded(value):
    return json.loads(value) if isinstance(value, str) else value


def _stock_requests(items) -> list[StockRequest]:
    if not items or not isinstance(items, list):
        raise InvalidArgument("At least one item is required")

    requests = []
    for item in items:
        product_id = item.get("product_id") if isinstance(item, Mapping) else None
        quantity = item.get("quantity") if isinstance(item, Mapping) else None
        if not product_id or not str(product_id).strip():
            raise InvalidArgument("Invalid product data: product id and quantity required")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidArgument(f"Invalid quantity for product {product_id}: must be a positive integer")
        requests.append(StockRequest(str(product_id), quantity))
    return requests


def _payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise InvalidArgument(f"Invalid payment method: {value!r}") from None


def _delivery_address(address) -> dict:
    if not isinstance(address, Mapping):
        raise InvalidArgument("Missing or invalid delivery address")
    for field_name in _ADDRESS_FIELDS:
        value = address.get(field_name)
        if not isinstance(value, str) or not value.strip():
            raise InvalidArgument(f"Missing or invalid delivery address: {field_name} required")
    return {
        "street": address["street"],
        "city": address["city"],
        "phone": address["phone"],
        "notes": address.get("notes") or "",
    }
