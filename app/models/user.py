"""
User model
Buyers, affiliates and administrators share one table
"""

from sqlalchemy import Column, String, Boolean, ForeignKey, Enum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel

class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    AFFILIATE = "affiliate"
    ADMIN = "admin"

class User(Base, TimestampedModel, UUIDModel):
    """Storefront account"""

    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)
    role = Column(
        Enum(UserRole, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=UserRole.CUSTOMER,
        nullable=False
    )

    # Either a local password or a reference to a hosted identity
    password_hash = Column(String(255), nullable=True)
    external_id = Column(String(255), unique=True, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Set when the user runs an affiliate account
    affiliate_id = Column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=True)

    # Relationships
    affiliate = relationship("Affiliate", foreign_keys=[affiliate_id])
