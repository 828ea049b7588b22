"""
Ebook schemas
"""

from pydantic import Field
from typing import Optional
from datetime import datetime
import uuid

from app.models.ebook import EbookStatus
from app.schemas.base import BaseSchema

class EbookCreate(BaseSchema):
    """Schema for adding an ebook to the catalogue"""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    cover_url: Optional[str] = Field(None, max_length=500)
    price: Optional[int] = Field(None, gt=0, description="Price in minor units")
    currency: str = Field("INR", min_length=3, max_length=3)
    status: EbookStatus = EbookStatus.DRAFT
    release_date: Optional[datetime] = None
    file_path: Optional[str] = Field(None, max_length=500)

class EbookResponse(BaseSchema):
    """Public catalogue entry; the asset path is never exposed"""
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    cover_url: Optional[str] = None
    price: Optional[int] = None
    currency: str
    status: EbookStatus
    release_date: Optional[datetime] = None
    created_at: datetime
