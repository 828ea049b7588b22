"""Affiliate, commission ledger and payout models"""

from sqlalchemy import (
    Column, String, Integer, BigInteger, Numeric, Boolean, Enum,
    ForeignKey, Index, DateTime, CheckConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel, SoftDeleteModel

class Affiliate(Base, TimestampedModel, UUIDModel, SoftDeleteModel):
    """Referral partner with running commission totals"""

    __tablename__ = "affiliates"

    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    commission_rate = Column(Numeric(5, 4), nullable=False, default=0.2)

    # Running totals, amounts in minor units.
    # Only ever changed through single-statement increments.
    clicks = Column(Integer, default=0, nullable=False)
    sales_count = Column(Integer, default=0, nullable=False)
    total_revenue = Column(BigInteger, default=0, nullable=False)
    total_commission = Column(BigInteger, default=0, nullable=False)
    total_paid = Column(BigInteger, default=0, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    commissions = relationship("CommissionEntry", back_populates="affiliate")
    payouts = relationship("AffiliatePayout", back_populates="affiliate")

    __table_args__ = (
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 1",
            name="ck_affiliates_commission_rate"
        ),
    )

class CommissionStatus(str, enum.Enum):
    CREDITED = "credited"
    REVERSED = "reversed"

class CommissionEntry(Base, TimestampedModel, UUIDModel):
    """One credited order; the unique order_id makes crediting exactly-once"""

    __tablename__ = "commission_entries"

    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, unique=True)
    affiliate_id = Column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False)

    order_amount = Column(Integer, nullable=False)
    commission_rate = Column(Numeric(5, 4), nullable=False)
    commission_amount = Column(Integer, nullable=False)

    status = Column(
        Enum(CommissionStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=CommissionStatus.CREDITED,
        nullable=False
    )
    reversed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    affiliate = relationship("Affiliate", back_populates="commissions")
    order = relationship("Order")

    __table_args__ = (
        Index("idx_commission_entries_affiliate", "affiliate_id", "created_at"),
    )

class AffiliatePayout(Base, TimestampedModel, UUIDModel):
    """Money paid out to an affiliate against earned commission"""

    __tablename__ = "affiliate_payouts"

    affiliate_id = Column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    reference = Column(String(100), nullable=True)
    note = Column(String(500), nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    affiliate = relationship("Affiliate", back_populates="payouts")
