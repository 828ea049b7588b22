"""
Authentication schemas for request/response validation
"""

from pydantic import EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
import uuid

from app.core.config import settings
from app.models.user import UserRole
from app.schemas.base import BaseSchema

class RegisterRequest(BaseSchema):
    """User registration request"""
    email: EmailStr
    password: str = Field(..., max_length=128)
    name: Optional[str] = Field(None, min_length=1, max_length=100)

    @field_validator('email')
    @classmethod
    def lower_email(cls, v):
        return v.lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if len(v) < settings.PASSWORD_MIN_LENGTH:
            raise ValueError(
                f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
            )
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "email": "reader@example.com",
                "password": "correct-horse-battery",
                "name": "Asha"
            }
        }

class LoginRequest(BaseSchema):
    """Email and password login"""
    email: EmailStr
    password: str = Field(..., max_length=128)

    @field_validator('email')
    @classmethod
    def lower_email(cls, v):
        return v.lower()

class UserResponse(BaseSchema):
    """User data in responses"""
    id: uuid.UUID
    email: str
    name: Optional[str] = None
    role: UserRole
    affiliate_id: Optional[uuid.UUID] = None
    is_active: bool
    created_at: datetime

class TokenResponse(BaseSchema):
    """Token response after successful authentication"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
