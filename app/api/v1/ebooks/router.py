"""
Ebook catalogue routes
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import uuid

from app.core.database import get_db
from app.core.security import require_admin
from app.models import EbookStatus
from .schemas import EbookCreate, EbookResponse
from .services import EbookService

router = APIRouter()

@router.get("/", response_model=List[EbookResponse], summary="List published ebooks")
async def list_ebooks(db: AsyncSession = Depends(get_db)):
    service = EbookService(db)
    return await service.list_by_status(EbookStatus.PUBLISHED)

@router.get("/upcoming", response_model=List[EbookResponse], summary="List upcoming ebooks")
async def list_upcoming(db: AsyncSession = Depends(get_db)):
    service = EbookService(db)
    return await service.list_upcoming()

@router.get("/{ebook_id}", response_model=EbookResponse, summary="Get ebook")
async def get_ebook(ebook_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    service = EbookService(db)
    return await service.get_ebook(ebook_id)

@router.post(
    "/",
    response_model=EbookResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add ebook"
)
async def create_ebook(
    data: EbookCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Add a title to the catalogue (admin only)"""
    service = EbookService(db)
    return await service.create_ebook(data)
