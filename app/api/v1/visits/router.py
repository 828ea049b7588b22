"""
Referral visit routes
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.database import get_db
from app.models import Visit
from app.api.v1.affiliates.services import AffiliateService
from .schemas import VisitCreate, VisitResponse

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post(
    "/",
    response_model=VisitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record referral visit"
)
async def record_visit(
    data: VisitCreate,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Log a click on an affiliate link and bump the affiliate's click count

    Request metadata fills in whatever the client leaves out.
    """
    service = AffiliateService(db)
    affiliate = await service.get_by_code(data.affiliate_code)

    forwarded = request.headers.get("X-Forwarded-For")
    client_ip = forwarded.split(",")[0].strip() if forwarded else (
        request.client.host if request.client else None
    )

    visit = Visit(
        affiliate_id=affiliate.id,
        affiliate_code=affiliate.code,
        ip=data.ip or client_ip,
        user_agent=data.user_agent or request.headers.get("User-Agent"),
        referrer=data.referrer or request.headers.get("Referer"),
        landing_path=data.landing_path,
    )
    db.add(visit)
    await service.record_click(affiliate.id)
    await db.flush()
    await db.commit()

    logger.info(f"Visit recorded for affiliate {affiliate.code}")
    return visit
