"""Referral click log"""

from sqlalchemy import Column, String, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID

from .base import Base, TimestampedModel, UUIDModel

class Visit(Base, TimestampedModel, UUIDModel):
    """Append-only record of a landing through an affiliate link"""

    __tablename__ = "visits"

    affiliate_id = Column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False)
    affiliate_code = Column(String(50), nullable=False)

    ip = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    referrer = Column(String(1000), nullable=True)
    landing_path = Column(String(1000), nullable=True)

    __table_args__ = (
        Index("idx_visits_affiliate_created", "affiliate_id", "created_at"),
    )
