"""
Order schemas for request/response validation
"""

from pydantic import Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
import uuid

from app.models.order import OrderStatus
from app.schemas.base import BaseSchema

class OrderCreate(BaseSchema):
    """Schema for creating order"""
    buyer_id: Optional[uuid.UUID] = None
    product_id: Optional[uuid.UUID] = None
    amount: int = Field(..., description="Amount in minor units (paise for INR)")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    referral_code: Optional[str] = Field(None, max_length=50)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper() if v else v

class VerifyPaymentRequest(BaseSchema):
    """Checkout callback forwarded by the client"""
    order_id: uuid.UUID
    gateway_order_id: str = Field(..., min_length=1, max_length=100)
    gateway_payment_id: str = Field(..., min_length=1, max_length=100)
    gateway_signature: str = Field(..., min_length=1, max_length=255)

class OrderCancelRequest(BaseSchema):
    reason: Optional[str] = Field(None, max_length=500)

class OrderRefundRequest(BaseSchema):
    reason: Optional[str] = Field(None, max_length=500)

class OrderResponse(BaseSchema):
    """Schema for order response"""
    id: uuid.UUID
    buyer_id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    amount: int
    currency: str
    status: OrderStatus
    referral_code: Optional[str] = None
    affiliate_id: Optional[uuid.UUID] = None
    commission_rate: Optional[float] = None
    commission_applied: bool
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    failure_reason: Optional[str] = None
    failed_attempts: int = 0
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

class GatewayOrderResponse(BaseSchema):
    """Subset of the gateway order the checkout widget needs"""
    id: str
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: Optional[str] = None

class OrderCreateResponse(BaseSchema):
    order: OrderResponse
    gateway_order: GatewayOrderResponse
    key_id: str

class VerifyPaymentResponse(BaseSchema):
    order: OrderResponse
    outcome: str
    commission_credited: bool = False

class OrderListResponse(BaseSchema):
    items: List[OrderResponse]
    total: int
