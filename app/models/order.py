"""Order model with status lifecycle"""

from sqlalchemy import (
    Column, String, Integer, Numeric, Enum, ForeignKey, Index,
    Text, DateTime, Boolean, CheckConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel

class OrderStatus(str, enum.Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

class Order(Base, TimestampedModel, UUIDModel):
    """
    One purchase attempt

    Rows are never deleted; every state change is an update on the same
    record so the table doubles as the audit trail.
    """

    __tablename__ = "orders"

    # Parties
    buyer_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    product_id = Column(UUID(as_uuid=True), ForeignKey("ebooks.id"), nullable=True)

    # Amount in minor units (paise for INR)
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")

    # Referral attribution, snapshotted at creation
    referral_code = Column(String(50), nullable=True, index=True)
    affiliate_id = Column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=True)
    commission_rate = Column(Numeric(5, 4), nullable=True)
    commission_applied = Column(Boolean, default=False, nullable=False)

    # Gateway identifiers
    gateway_order_id = Column(String(100), unique=True, nullable=True)
    gateway_payment_id = Column(String(100), unique=True, nullable=True)
    gateway_signature = Column(String(255), nullable=True)

    # Status
    status = Column(
        Enum(OrderStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=OrderStatus.CREATED,
        nullable=False,
        index=True
    )
    # Declined checkout attempts; the order stays open for a retry
    failure_reason = Column(String(500), nullable=True)
    failed_attempts = Column(Integer, default=0, nullable=False)

    # Timestamps
    expires_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    # Gateway refund reference
    refund_reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    buyer = relationship("User", foreign_keys=[buyer_id])
    product = relationship("Ebook")
    affiliate = relationship("Affiliate")

    # Indexes
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_orders_amount_positive"),
        Index("idx_orders_buyer_created", "buyer_id", "created_at"),
        Index("idx_orders_affiliate_status", "affiliate_id", "status"),
    )
