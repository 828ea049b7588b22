"""
Affiliate schemas for request/response validation
"""

from pydantic import Field, EmailStr, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from app.models.affiliate import CommissionStatus
from app.schemas.base import BaseSchema

def _normalize_code(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().upper()
    return value or None

class AffiliateCreate(BaseSchema):
    """Schema for creating an affiliate"""
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    commission_rate: Optional[Decimal] = None
    code: Optional[str] = Field(None, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        return _normalize_code(v)

class AffiliateUpdate(BaseSchema):
    """Schema for updating an affiliate"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    commission_rate: Optional[Decimal] = None
    is_active: Optional[bool] = None

class AffiliateRegister(BaseSchema):
    """Self-service affiliate signup"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        return _normalize_code(v)

class AffiliatePublicResponse(BaseSchema):
    """What a storefront visitor may see about a referral code"""
    code: str
    name: str

class AffiliateResponse(BaseSchema):
    """Schema for affiliate response"""
    id: uuid.UUID
    code: str
    name: str
    email: Optional[str] = None
    commission_rate: float
    clicks: int
    sales_count: int
    total_revenue: int
    total_commission: int
    total_paid: int
    balance: int = 0
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, affiliate) -> "AffiliateResponse":
        response = cls.model_validate(affiliate)
        response.balance = (affiliate.total_commission or 0) - (affiliate.total_paid or 0)
        return response

class AffiliateListResponse(BaseSchema):
    items: List[AffiliateResponse]
    total: int

class CommissionEntryResponse(BaseSchema):
    """One line of the commission ledger"""
    id: uuid.UUID
    order_id: uuid.UUID
    affiliate_id: uuid.UUID
    order_amount: int
    commission_rate: float
    commission_amount: int
    status: CommissionStatus
    reversed_at: Optional[datetime] = None
    created_at: datetime

class PayoutCreate(BaseSchema):
    """Schema for recording a payout"""
    amount: int = Field(..., gt=0)
    reference: Optional[str] = Field(None, max_length=100)
    note: Optional[str] = Field(None, max_length=500)

class PayoutResponse(BaseSchema):
    id: uuid.UUID
    affiliate_id: uuid.UUID
    amount: int
    reference: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime
