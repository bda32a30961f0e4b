"""Order aggregate: the core of the marketplace domain.

An Order freezes what was bought (name and price snapshots per line item),
who bought it from whom, and where it goes. From there it moves through the
fulfilment state machine, while the escrow fields track custody of the
buyer's funds independently of fulfilment progress.

State Machine:
    PENDING → CONFIRMED → SHIPPED → DELIVERED
    PENDING, CONFIRMED → CANCELLED
    PENDING, CONFIRMED, SHIPPED → REFUNDED
    DELIVERED, CANCELLED, REFUNDED are terminal

Escrow:
    NONE → HELD → RELEASED (only once the order is DELIVERED)

Every mutation appends one StatusChange to ``status_history``. ``version``
is the aggregate's persisted revision: 0 once the order is stored, one more
per saved mutation. Repositories check it on every update.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from marketplace.domain import marketplace


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    CASH_ON_DELIVERY = "CashOnDelivery"
    MOBILE_WALLET_A = "MobileWalletA"
    MOBILE_WALLET_B = "MobileWalletB"


class EscrowStatus(Enum):
    NONE = "none"
    HELD = "held"
    RELEASED = "released"


class OrderEvent(Enum):
    ORDER_CREATED = "order_created"
    STATUS_UPDATED = "status_updated"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ESCROW_RELEASED = "escrow_released"


# State machine transition map
TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

# Statuses in which the order has been handed to a courier
_SHIPPED_STATUSES = {OrderStatus.SHIPPED, OrderStatus.DELIVERED}

# Statuses that can only be reached before shipment
_UNSHIPPED_STATUSES = {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}

# Statuses in which a mobile-wallet payment may still be captured
PAYABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}


def _new_id() -> str:
    return str(uuid4())


def _stamp(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class DeliveryAddress:
    """Where the order is delivered, captured at creation and never changed."""

    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    phone = String(required=True, max_length=30)
    notes = String(max_length=500, default="")

    @invariant.post
    def fields_cannot_be_blank(self):
        for field_name in ("street", "city", "phone"):
            if not (getattr(self, field_name) or "").strip():
                raise ValidationError({field_name: ["Cannot be blank"]})


@marketplace.value_object(part_of="Order")
class PaymentConfirmation:
    """Receipt for funds placed into escrow."""

    transaction_id = String(required=True, max_length=255)
    receipt_id = String(required=True, max_length=255)
    paid_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class LineItem:
    """A product and quantity, with the name and unit price as they were when ordered."""

    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


@marketplace.entity(part_of="Order")
class StatusChange:
    """One entry of the order's history: what happened, in which status, by whom."""

    status = String(required=True, choices=OrderStatus)
    actor_id = String(required=True, max_length=128)
    event = String(required=True, choices=OrderEvent)
    note = String(max_length=500)
    at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    items = HasMany(LineItem)
    total_amount = Float(default=0.0, min_value=0.0)
    payment_method = String(required=True, choices=PaymentMethod)
    delivery_address = ValueObject(DeliveryAddress)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    tracking_number = String(max_length=255)
    proof_of_delivery = String(max_length=1000)
    escrow_status = String(choices=EscrowStatus, default=EscrowStatus.NONE.value)
    payment_confirmation = ValueObject(PaymentConfirmation)
    escrow_released_at = DateTime()
    escrow_released_by = String(max_length=128)
    created_at = DateTime()
    updated_at = DateTime()
    status_history = HasMany(StatusChange)

    @invariant.post
    def tracking_number_present_once_shipped(self):
        status = OrderStatus(self.status)
        if status in _SHIPPED_STATUSES and not self.tracking_number:
            raise ValidationError({"tracking_number": ["Tracking number is required once shipped"]})
        if status in _UNSHIPPED_STATUSES and self.tracking_number:
            raise ValidationError({"tracking_number": ["Tracking number is only set once shipped"]})

    @invariant.post
    def proof_of_delivery_present_once_delivered(self):
        delivered = OrderStatus(self.status) == OrderStatus.DELIVERED
        if delivered and not self.proof_of_delivery:
            raise ValidationError({"proof_of_delivery": ["Proof of delivery is required once delivered"]})
        if not delivered and self.proof_of_delivery:
            raise ValidationError({"proof_of_delivery": ["Proof of delivery is only set once delivered"]})

    @invariant.post
    def escrow_is_backed_by_payment(self):
        escrow = EscrowStatus(self.escrow_status)
        if escrow != EscrowStatus.NONE and self.payment_confirmation is None:
            raise ValidationError({"escrow_status": ["Escrow requires a payment confirmation"]})
        if escrow == EscrowStatus.RELEASED and OrderStatus(self.status) != OrderStatus.DELIVERED:
            raise ValidationError({"escrow_status": ["Escrow can only be released for delivered orders"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        buyer_id,
        seller_id,
        lines,
        payment_method,
        delivery_address,
        placed_at,
        order_id=None,
    ):
        """Create a pending order.

        Args:
            buyer_id: The buyer placing the order.
            seller_id: The seller fulfilling it.
            lines: List of dicts with product_id, name, price, quantity. Name
                and price are the catalog values at the time of ordering.
            payment_method: One of the PaymentMethod values.
            delivery_address: Dict with street, city, phone and optional notes.
            placed_at: Creation timestamp.
        """
        items = [
            LineItem(
                id=_new_id(),
                product_id=line["product_id"],
                name=line["name"],
                price=line["price"],
                quantity=line["quantity"],
            )
            for line in lines
        ]
        return cls(
            id=order_id or _new_id(),
            buyer_id=buyer_id,
            seller_id=seller_id,
            items=items,
            total_amount=round(sum(item.subtotal for item in items), 2),
            payment_method=payment_method,
            delivery_address=DeliveryAddress(**delivery_address),
            status=OrderStatus.PENDING.value,
            escrow_status=EscrowStatus.NONE.value,
            created_at=placed_at,
            updated_at=placed_at,
            status_history=[
                StatusChange(
                    id=_new_id(),
                    status=OrderStatus.PENDING.value,
                    actor_id=str(buyer_id),
                    event=OrderEvent.ORDER_CREATED.value,
                    at=placed_at,
                )
            ],
        )

    # -------------------------------------------------------------------
    # Fulfilment transitions
    # -------------------------------------------------------------------
    def can_transition_to(self, target_status: OrderStatus) -> bool:
        return target_status in TRANSITIONS[OrderStatus(self.status)]

    def transition_to(
        self,
        target_status: OrderStatus,
        actor_id,
        at: datetime,
        tracking_number=None,
        proof_of_delivery=None,
        note=None,
    ):
        """Move the order to ``target_status``.

        Authorization and field preconditions are the fraud guard's job; this
        only refuses moves the state machine does not allow.
        """
        if not self.can_transition_to(target_status):
            raise ValidationError(
                {"status": [f"Cannot transition from {self.status} to {target_status.value}"]}
            )

        with atomic_change(self):
            self.status = target_status.value
            if target_status == OrderStatus.SHIPPED:
                self.tracking_number = tracking_number
            elif target_status == OrderStatus.DELIVERED:
                self.proof_of_delivery = proof_of_delivery
                self._collect_cash_on_delivery(at)
            self.updated_at = at
            self._record(OrderEvent.STATUS_UPDATED, actor_id, at, note)

    def _collect_cash_on_delivery(self, at: datetime):
        """Cash handed over at the door goes straight into escrow."""
        if self.payment_method != PaymentMethod.CASH_ON_DELIVERY.value:
            return
        if self.escrow_status != EscrowStatus.NONE.value:
            return
        self.payment_confirmation = PaymentConfirmation(
            transaction_id=f"COD_{self.id}_{_stamp(at)}",
            receipt_id=f"RECEIPT_{self.id}_{_stamp(at)}",
            paid_at=at,
        )
        self.escrow_status = EscrowStatus.HELD.value

    # -------------------------------------------------------------------
    # Escrow
    # -------------------------------------------------------------------
    def hold_payment(self, actor_id, at: datetime, transaction_id=None, receipt_id=None):
        """Place the buyer's payment in escrow. Fulfilment status is unaffected."""
        if self.escrow_status != EscrowStatus.NONE.value:
            raise ValidationError({"escrow_status": ["Payment has already been captured"]})

        with atomic_change(self):
            self.payment_confirmation = PaymentConfirmation(
                transaction_id=transaction_id or f"TXN_{self.id}_{_stamp(at)}",
                receipt_id=receipt_id or f"RECEIPT_{self.id}_{_stamp(at)}",
                paid_at=at,
            )
            self.escrow_status = EscrowStatus.HELD.value
            self.updated_at = at
            self._record(OrderEvent.PAYMENT_CONFIRMED, actor_id, at)

    def release_escrow(self, released_by, at: datetime):
        """Hand escrowed funds to the seller."""
        if self.escrow_status != EscrowStatus.HELD.value:
            raise ValidationError({"escrow_status": ["Only held escrow can be released"]})

        with atomic_change(self):
            self.escrow_status = EscrowStatus.RELEASED.value
            self.escrow_released_at = at
            self.escrow_released_by = released_by
            self.updated_at = at
            self._record(OrderEvent.ESCROW_RELEASED, released_by, at)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _record(self, event: OrderEvent, actor_id, at: datetime, note=None):
        self.add_status_history(
            StatusChange(
                id=_new_id(),
                status=self.status,
                actor_id=str(actor_id),
                event=event.value,
                note=note,
                at=at,
            )
        )

    @property
    def version(self) -> int:
        """Persisted revision, -1 until the order is first saved."""
        return self._version

    def involves(self, user_id) -> bool:
        return str(user_id) in (str(self.buyer_id), str(self.seller_id))

