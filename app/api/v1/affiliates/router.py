"""
Affiliate API routes
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List
import uuid
import logging

from app.core.database import get_db
from app.core.exceptions import ForbiddenException, NotFoundException
from app.core.security import get_current_user, require_admin, is_admin
from app.models import User
from app.models.affiliate import CommissionStatus
from .schemas import (
    AffiliateCreate,
    AffiliateUpdate,
    AffiliateRegister,
    AffiliateResponse,
    AffiliatePublicResponse,
    AffiliateListResponse,
    CommissionEntryResponse,
    PayoutCreate,
    PayoutResponse
)
from .services import AffiliateService

logger = logging.getLogger(__name__)

router = APIRouter()

async def _linked_affiliate_id(db: AsyncSession, current_user: dict) -> Optional[uuid.UUID]:
    user = await db.get(User, uuid.UUID(current_user["id"]))
    return user.affiliate_id if user else None

@router.post(
    "/",
    response_model=AffiliateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create affiliate"
)
async def create_affiliate(
    data: AffiliateCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create an affiliate (admin only)"""
    service = AffiliateService(db)
    affiliate = await service.create_affiliate(data)
    return AffiliateResponse.from_model(affiliate)

@router.get(
    "/",
    response_model=AffiliateListResponse,
    summary="List affiliates"
)
async def list_affiliates(
    include_inactive: bool = Query(True, alias="includeInactive"),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = AffiliateService(db)
    result = await service.list_affiliates(include_inactive, page, size)
    return AffiliateListResponse(
        items=[AffiliateResponse.from_model(a) for a in result["items"]],
        total=result["total"]
    )

@router.post(
    "/register",
    response_model=AffiliateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Become an affiliate"
)
async def register_affiliate(
    data: AffiliateRegister,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Self-service signup at the default commission rate"""
    service = AffiliateService(db)
    affiliate = await service.register_affiliate(uuid.UUID(current_user["id"]), data)
    return AffiliateResponse.from_model(affiliate)

@router.get(
    "/me",
    response_model=AffiliateResponse,
    summary="Get own affiliate account"
)
async def get_my_affiliate(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    affiliate_id = await _linked_affiliate_id(db, current_user)
    if not affiliate_id:
        raise NotFoundException("No affiliate account linked", "AFFILIATE_NOT_FOUND")
    service = AffiliateService(db)
    return AffiliateResponse.from_model(await service.get_affiliate(affiliate_id))

@router.get(
    "/{code}",
    response_model=AffiliatePublicResponse,
    summary="Look up referral code"
)
async def get_affiliate_by_code(
    code: str,
    db: AsyncSession = Depends(get_db)
):
    """Public lookup used by the storefront to validate a referral link"""
    service = AffiliateService(db)
    return await service.get_by_code(code)

@router.patch(
    "/{affiliate_id}",
    response_model=AffiliateResponse,
    summary="Update affiliate"
)
async def update_affiliate(
    affiliate_id: uuid.UUID,
    data: AffiliateUpdate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = AffiliateService(db)
    affiliate = await service.update_affiliate(affiliate_id, data)
    return AffiliateResponse.from_model(affiliate)

@router.delete(
    "/{affiliate_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete affiliate"
)
async def delete_affiliate(
    affiliate_id: uuid.UUID,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Soft delete; the code stops resolving but history is kept"""
    service = AffiliateService(db)
    await service.soft_delete_affiliate(affiliate_id)

@router.get(
    "/{affiliate_id}/commissions",
    response_model=List[CommissionEntryResponse],
    summary="List commission ledger"
)
async def list_commissions(
    affiliate_id: uuid.UUID,
    status: Optional[CommissionStatus] = None,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Ledger entries, visible to admins and the affiliate itself"""
    if not is_admin(current_user):
        if await _linked_affiliate_id(db, current_user) != affiliate_id:
            raise ForbiddenException("Not allowed to view these commissions")

    service = AffiliateService(db)
    return await service.list_commissions(affiliate_id, status)

@router.post(
    "/{affiliate_id}/payouts",
    response_model=PayoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record payout"
)
async def record_payout(
    affiliate_id: uuid.UUID,
    data: PayoutCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    service = AffiliateService(db)
    return await service.record_payout(
        affiliate_id, data, created_by=uuid.UUID(current_user["id"])
    )
