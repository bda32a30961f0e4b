"""Pydantic request/response schemas for the Marketplace API.

These are external contracts (anti-corruption layer), separate from the
protean domain objects. Field-level checks are left to the engine so that
every rejected input is reported with the same error envelope.
"""

from datetime import datetime

from pydantic import BaseModel

from marketplace.order.order import Order, StatusChange


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    street: str
    city: str
    phone: str
    notes: str | None = None


class OrderItemRequest(BaseModel):
    product_id: str
    quantity: int


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    seller_id: str
    items: list[OrderItemRequest]
    payment_method: str
    delivery_address: AddressSchema

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "seller_id": "seller-001",
                    "items": [{"product_id": "prod-001", "quantity": 1}],
                    "payment_method": "CashOnDelivery",
                    "delivery_address": {
                        "street": "12 Pansodan Rd",
                        "city": "Yangon",
                        "phone": "+95 9 000 0000",
                    },
                }
            ]
        }
    }


class UpdateStatusRequest(BaseModel):
    status: str
    tracking_number: str | None = None
    proof_of_delivery: str | None = None
    notes: str | None = None


class SimulatePaymentRequest(BaseModel):
    transaction_id: str | None = None
    receipt_id: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class LineItemResponse(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int


class StatusChangeResponse(BaseModel):
    status: str
    actor_id: str
    event: str
    note: str | None = None
    at: datetime

    @classmethod
    def from_change(cls, change: StatusChange) -> "StatusChangeResponse":
        return cls(
            status=change.status,
            actor_id=change.actor_id,
            event=change.event,
            note=change.note,
            at=change.at,
        )


class PaymentConfirmationResponse(BaseModel):
    transaction_id: str
    receipt_id: str
    paid_at: datetime


class OrderResponse(BaseModel):
    order_id: str
    buyer_id: str
    seller_id: str
    items: list[LineItemResponse]
    total_amount: float
    payment_method: str
    delivery_address: AddressSchema
    status: str
    tracking_number: str | None = None
    proof_of_delivery: str | None = None
    escrow_status: str
    payment_confirmation: PaymentConfirmationResponse | None = None
    escrow_released_at: datetime | None = None
    escrow_released_by: str | None = None
    created_at: datetime
    updated_at: datetime
    status_history: list[StatusChangeResponse]
    version: int

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        confirmation = order.payment_confirmation
        address = order.delivery_address
        return cls(
            order_id=str(order.id),
            buyer_id=str(order.buyer_id),
            seller_id=str(order.seller_id),
            items=[
                LineItemResponse(
                    product_id=str(item.product_id),
                    name=item.name,
                    price=item.price,
                    quantity=item.quantity,
                )
                for item in order.items
            ],
            total_amount=order.total_amount,
            payment_method=order.payment_method,
            delivery_address=AddressSchema(
                street=address.street,
                city=address.city,
                phone=address.phone,
                notes=address.notes,
            ),
            status=order.status,
            tracking_number=order.tracking_number,
            proof_of_delivery=order.proof_of_delivery,
            escrow_status=order.escrow_status,
            payment_confirmation=(
                PaymentConfirmationResponse(
                    transaction_id=confirmation.transaction_id,
                    receipt_id=confirmation.receipt_id,
                    paid_at=confirmation.paid_at,
                )
                if confirmation
                else None
            ),
            escrow_released_at=order.escrow_released_at,
            escrow_released_by=order.escrow_released_by,
            created_at=order.created_at,
            updated_at=order.updated_at,
            status_history=[StatusChangeResponse.from_change(change) for change in order.status_history],
            version=order.version,
        )


class CreateOrderResponse(BaseModel):
    order_id: str
    order: OrderResponse


class OrderListResponse(BaseModel):
    count: int
    orders: list[OrderResponse]


class OrderLogsResponse(BaseModel):
    order_id: str
    count: int
    logs: list[StatusChangeResponse]


class ErrorBody(BaseModel):
    kind: str
    message: str
    product_id: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorBody
