"""
Order API routes
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from typing import Optional
import uuid
import logging

from app.core.database import get_db, get_session_factory
from app.core.exceptions import ForbiddenException
from app.core.security import get_current_user, require_admin, is_admin
from app.middleware.rate_limit import payments_limiter
from app.middleware.referral import resolve_referral_code
from app.models import Order
from app.api.v1.payments.razorpay_client import RazorpayClient, get_payment_gateway
from app.api.v1.payments.services import PaymentService
from app.services.notification_dispatcher import schedule_payment_notifications
from .schemas import (
    OrderCreate,
    OrderResponse,
    OrderListResponse,
    OrderCreateResponse,
    GatewayOrderResponse,
    OrderCancelRequest,
    OrderRefundRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse
)
from .services import OrderService

logger = logging.getLogger(__name__)

router = APIRouter()

def _ensure_can_view(order: Order, current_user: dict) -> None:
    if not is_admin(current_user) and str(order.buyer_id) != current_user["id"]:
        raise ForbiddenException("Order belongs to another buyer")

@router.post(
    "/",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description="Create a ledger order and the matching gateway order for checkout"
)
async def create_order(
    data: OrderCreate,
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayClient = Depends(get_payment_gateway)
):
    """Create new order"""
    buyer_id = data.buyer_id or uuid.UUID(current_user["id"])
    if str(buyer_id) != current_user["id"] and not is_admin(current_user):
        raise ForbiddenException("Cannot create orders for another buyer")

    service = OrderService(db, gateway)
    order, gateway_order = await service.create_order(
        buyer_id=buyer_id,
        amount=data.amount,
        product_id=data.product_id,
        currency=data.currency,
        referral_code=resolve_referral_code(data.referral_code, request)
    )

    return OrderCreateResponse(
        order=OrderResponse.model_validate(order),
        gateway_order=GatewayOrderResponse(
            id=gateway_order["id"],
            amount=gateway_order.get("amount", order.amount),
            currency=gateway_order.get("currency", order.currency),
            receipt=gateway_order.get("receipt"),
            status=gateway_order.get("status")
        ),
        key_id=gateway.key_id
    )

@router.post(
    "/verify",
    response_model=VerifyPaymentResponse,
    summary="Verify payment",
    description="Verify the checkout callback signature and settle the order"
)
@payments_limiter
async def verify_payment(
    request: Request,
    data: VerifyPaymentRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayClient = Depends(get_payment_gateway),
    session_factory: async_sessionmaker = Depends(get_session_factory)
):
    """Verify payment; safe to retry with the same identifiers"""
    service = PaymentService(db, gateway)
    result = await service.verify_payment(
        order_id=data.order_id,
        gateway_order_id=data.gateway_order_id,
        gateway_payment_id=data.gateway_payment_id,
        gateway_signature=data.gateway_signature,
        buyer_id=None if is_admin(current_user) else uuid.UUID(current_user["id"])
    )

    if result.transitioned:
        schedule_payment_notifications(background_tasks, result.order.id, session_factory)

    return VerifyPaymentResponse(
        order=OrderResponse.model_validate(result.order),
        outcome=result.outcome.value,
        commission_credited=result.credited
    )

@router.get(
    "/",
    response_model=OrderListResponse,
    summary="List orders",
    description="Orders of one buyer, newest first"
)
async def list_orders(
    buyer_id: Optional[uuid.UUID] = Query(None, alias="buyerId"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List a buyer's orders; non-admins only see their own"""
    buyer_id = buyer_id or uuid.UUID(current_user["id"])
    if str(buyer_id) != current_user["id"] and not is_admin(current_user):
        raise ForbiddenException("Cannot list another buyer's orders")

    service = OrderService(db)
    orders = await service.get_orders_by_buyer(buyer_id)
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=len(orders)
    )

@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order details"
)
async def get_order(
    order_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = OrderService(db)
    order = await service.get_order(order_id)
    _ensure_can_view(order, current_user)
    return order

@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel order"
)
async def cancel_order(
    order_id: uuid.UUID,
    data: Optional[OrderCancelRequest] = None,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel an order that hasn't been paid"""
    service = OrderService(db)
    order = await service.get_order(order_id)
    _ensure_can_view(order, current_user)
    return await service.cancel_order(order_id, data.reason if data else None)

@router.post(
    "/{order_id}/refund",
    response_model=OrderResponse,
    summary="Refund order"
)
async def refund_order(
    order_id: uuid.UUID,
    data: Optional[OrderRefundRequest] = None,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayClient = Depends(get_payment_gateway)
):
    """Refund a paid order and reverse its commission (admin only)"""
    service = OrderService(db, gateway)
    return await service.refund_order(order_id, data.reason if data else None)
