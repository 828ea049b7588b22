"""
Payment API routes
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from typing import Optional

from app.core.config import settings
from app.core.database import get_db, get_session_factory
from app.services.notification_dispatcher import schedule_payment_notifications
from .razorpay_client import RazorpayClient, get_payment_gateway
from .schemas import PaymentKeyResponse, WebhookResponse
from .services import PaymentService

router = APIRouter()

@router.get(
    "/key",
    response_model=PaymentKeyResponse,
    summary="Get checkout key",
    description="Public key id for the checkout widget"
)
async def get_payment_key():
    return PaymentKeyResponse(key_id=settings.RAZORPAY_KEY_ID, currency=settings.DEFAULT_CURRENCY)

@router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="Gateway webhook",
    description="Signed payment events pushed by the gateway"
)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_razorpay_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayClient = Depends(get_payment_gateway),
    session_factory: async_sessionmaker = Depends(get_session_factory)
):
    """Handle payment webhook"""
    # Signature covers the raw bytes, so read them before any parsing
    body = await request.body()

    service = PaymentService(db, gateway)
    result = await service.handle_webhook(body, x_razorpay_signature)

    if result.transitioned and result.order_id:
        schedule_payment_notifications(background_tasks, result.order_id, session_factory)

    return WebhookResponse(
        status=result.status,
        event=result.event,
        outcome=result.outcome,
        order_id=str(result.order_id) if result.order_id else None
    )
