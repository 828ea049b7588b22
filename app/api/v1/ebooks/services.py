"""
Ebook catalogue service
"""

from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import uuid
import logging

from app.core.exceptions import NotFoundException
from app.models import Ebook, EbookStatus
from .schemas import EbookCreate

logger = logging.getLogger(__name__)

class EbookService:
    """Catalogue reads and admin writes"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_by_status(self, status: EbookStatus) -> List[Ebook]:
        result = await self.db.execute(
            select(Ebook)
            .where(Ebook.status == status)
            .order_by(Ebook.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_upcoming(self) -> List[Ebook]:
        """Announced titles, soonest release first"""
        result = await self.db.execute(
            select(Ebook)
            .where(Ebook.status == EbookStatus.UPCOMING)
            .order_by(Ebook.release_date.asc().nulls_last(), Ebook.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_ebook(self, ebook_id: uuid.UUID) -> Ebook:
        """Drafts are not part of the public catalogue"""
        ebook = await self.db.get(Ebook, ebook_id)
        if not ebook or ebook.status == EbookStatus.DRAFT:
            raise NotFoundException("Ebook not found", "PRODUCT_NOT_FOUND")
        return ebook

    async def create_ebook(self, data: EbookCreate) -> Ebook:
        ebook = Ebook(**data.model_dump())
        ebook.currency = ebook.currency.upper()
        self.db.add(ebook)
        await self.db.flush()
        await self.db.commit()
        logger.info(f"Ebook {ebook.id} '{ebook.title}' created as {ebook.status.value}")
        return ebook
