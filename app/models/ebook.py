"""Ebook catalogue model"""

from sqlalchemy import Column, String, Integer, Text, DateTime, Enum, Index
import enum

from .base import Base, TimestampedModel, UUIDModel

class EbookStatus(str, enum.Enum):
    DRAFT = "draft"
    UPCOMING = "upcoming"
    PUBLISHED = "published"

class Ebook(Base, TimestampedModel, UUIDModel):
    """Digital product sold through the storefront"""

    __tablename__ = "ebooks"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    cover_url = Column(String(500), nullable=True)

    # Price in minor units; NULL means the buyer supplies the amount
    price = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=False, default="INR")

    status = Column(
        Enum(EbookStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=EbookStatus.DRAFT,
        nullable=False
    )
    release_date = Column(DateTime(timezone=True), nullable=True)

    # Digital delivery asset, relative to EBOOK_ASSET_DIR
    file_path = Column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_ebooks_status_created", "status", "created_at"),
    )
