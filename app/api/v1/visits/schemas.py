"""
Referral visit schemas
"""

from pydantic import Field
from typing import Optional
from datetime import datetime
import uuid

from app.schemas.base import BaseSchema

class VisitCreate(BaseSchema):
    """A landing through an affiliate link"""
    affiliate_code: str = Field(..., min_length=1, max_length=50)
    ip: Optional[str] = Field(None, max_length=64)
    user_agent: Optional[str] = Field(None, max_length=500)
    referrer: Optional[str] = Field(None, max_length=1000)
    landing_path: Optional[str] = Field(None, max_length=1000)

class VisitResponse(BaseSchema):
    id: uuid.UUID
    affiliate_id: uuid.UUID
    affiliate_code: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    landing_path: Optional[str] = None
    created_at: datetime
