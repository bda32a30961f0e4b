"""Product aggregate: the catalog record whose stock the inventory ledger guards."""

from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, Integer, String

from marketplace.domain import marketplace


class ProductStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@marketplace.aggregate
class Product:
    """A listing owned by one seller, with a finite stock counter.

    Stock only moves through the inventory ledger: decremented by reservations at order
    creation, restored when an order is cancelled or refunded.
    """

    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    stock = Integer(default=0, min_value=0)
    seller_id = Identifier(required=True)
    status = String(choices=ProductStatus, default=ProductStatus.ACTIVE.value)

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    def can_supply(self, quantity: int) -> bool:
        return self.is_active and self.stock >= quantity

    def take(self, quantity: int) -> None:
        if not self.can_supply(quantity):
            raise ValidationError({"stock": [f"Cannot take {quantity} of product {self.id}"]})
        self.stock -= quantity

    def put_back(self, quantity: int) -> None:
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        self.stock += quantity
