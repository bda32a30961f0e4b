"""FastAPI routes for the Marketplace domain: orders, payment and escrow."""

import json

from fastapi import APIRouter, Depends, Header, Request

from marketplace.api.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    ErrorResponse,
    OrderListResponse,
    OrderLogsResponse,
    OrderResponse,
    SimulatePaymentRequest,
    StatusChangeResponse,
    UpdateStatusRequest,
)
from marketplace.errors import Unauthenticated
from marketplace.identity.auth import AuthContext, IdentityResolver, actor_fields
from marketplace.order.creation import CreateOrder
from marketplace.order.dispatch import place, submit
from marketplace.order.escrow import ReleaseEscrow, SimulatePayment
from marketplace.order.queries import get_order_by_id, get_order_logs, get_user_orders
from marketplace.order.transition import UpdateOrderStatus
from marketplace.utils.logging import bind_request_context


def get_identity(request: Request) -> IdentityResolver:
    return request.app.state.identity


async def current_actor(
    authorization: str | None = Header(default=None),
    identity: IdentityResolver = Depends(get_identity),
) -> AuthContext:
    """Resolve the ``Authorization: Bearer <token>`` header into an actor."""
    if not authorization:
        raise Unauthenticated("Missing or invalid Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Missing or invalid Authorization header")

    actor = identity.resolve(token.strip())
    bind_request_context(actor_id=actor.uid, actor_role=actor.role)
    return actor


order_router = APIRouter(
    prefix="/orders",
    tags=["orders"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


@order_router.post("", status_code=201, response_model=CreateOrderResponse)
async def create_order(
    body: CreateOrderRequest,
    actor: AuthContext = Depends(current_actor),
) -> CreateOrderResponse:
    command = CreateOrder(
        **actor_fields(actor),
        seller_id=body.seller_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        payment_method=body.payment_method,
        delivery_address=json.dumps(body.delivery_address.model_dump()),
    )
    order_id = place(command)
    order = get_order_by_id(order_id, actor)
    return CreateOrderResponse(order_id=order_id, order=OrderResponse.from_order(order))


@order_router.get("", response_model=OrderListResponse)
async def list_user_orders(actor: AuthContext = Depends(current_actor)) -> OrderListResponse:
    orders = get_user_orders(actor)
    return OrderListResponse(count=len(orders), orders=[OrderResponse.from_order(o) for o in orders])


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, actor: AuthContext = Depends(current_actor)) -> OrderResponse:
    return OrderResponse.from_order(get_order_by_id(order_id, actor))


@order_router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    body: UpdateStatusRequest,
    actor: AuthContext = Depends(current_actor),
) -> OrderResponse:
    command = UpdateOrderStatus(
        order_id=order_id,
        **actor_fields(actor),
        status=body.status,
        tracking_number=body.tracking_number,
        proof_of_delivery=body.proof_of_delivery,
        note=body.notes,
    )
    return OrderResponse.from_order(submit(command))


@order_router.post("/{order_id}/payment", response_model=OrderResponse)
async def simulate_payment(
    order_id: str,
    body: SimulatePaymentRequest | None = None,
    actor: AuthContext = Depends(current_actor),
) -> OrderResponse:
    body = body or SimulatePaymentRequest()
    command = SimulatePayment(
        order_id=order_id,
        **actor_fields(actor),
        transaction_id=body.transaction_id,
        receipt_id=body.receipt_id,
    )
    return OrderResponse.from_order(submit(command))


@order_router.post("/{order_id}/escrow/release", response_model=OrderResponse)
async def release_escrow(order_id: str, actor: AuthContext = Depends(current_actor)) -> OrderResponse:
    command = ReleaseEscrow(order_id=order_id, **actor_fields(actor))
    return OrderResponse.from_order(submit(command))


@order_router.get("/{order_id}/logs", response_model=OrderLogsResponse)
async def get_audit_logs(order_id: str, actor: AuthContext = Depends(current_actor)) -> OrderLogsResponse:
    logs = get_order_logs(order_id, actor)
    return OrderLogsResponse(
        order_id=order_id,
        count=len(logs),
        logs=[StatusChangeResponse.from_change(change) for change in logs],
    )
