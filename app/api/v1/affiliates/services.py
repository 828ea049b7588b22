"""
Affiliate service layer
Handles referral code resolution, commission ledger and payouts
"""

from typing import List, Optional, Dict, Any
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
import uuid
import logging

from app.core.config import settings
from app.core.exceptions import (
    NotFoundException, ValidationException, ConflictException,
    DuplicateResourceException
)
from app.core.security import SecurityUtils
from app.models import (
    Affiliate, CommissionEntry, CommissionStatus, AffiliatePayout,
    User, UserRole
)
from app.utils.helpers import calculate_commission, utcnow
from .schemas import AffiliateCreate, AffiliateUpdate, AffiliateRegister, PayoutCreate

logger = logging.getLogger(__name__)

# Matches Numeric(5, 4) on affiliates.commission_rate
RATE_PRECISION = Decimal("0.0001")

def normalize_commission_rate(rate: Any) -> Decimal:
    """
    Coerce a commission rate to Decimal and check it lies in [0, 1]

    The result is rounded to the four places the ledger stores, so the
    rate echoed back is the rate snapshotted onto orders.

    Raises:
        ValidationException: If the rate is not a number in range
    """
    try:
        value = Decimal(str(rate))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationException(
            f"Commission rate must be a number, got {rate!r}",
            "INVALID_COMMISSION_RATE"
        )
    if not value.is_finite() or value < 0 or value > 1:
        raise ValidationException(
            "Commission rate must be between 0 and 1",
            "INVALID_COMMISSION_RATE"
        )
    return value.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)

class AffiliateService:
    """Affiliate service for business logic"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Lookups

    async def resolve_by_code(self, code: Optional[str]) -> Optional[Affiliate]:
        """
        Resolve a referral code to an affiliate eligible for commission

        Args:
            code: Referral code as received, any case

        Returns:
            The active, non-deleted affiliate or None
        """
        if not code or not code.strip():
            return None

        result = await self.db.execute(
            select(Affiliate).where(
                Affiliate.code == code.strip().upper(),
                Affiliate.is_active == True,
                Affiliate.is_deleted == False
            )
        )
        return result.scalar_one_or_none()

    async def get_by_code(self, code: str) -> Affiliate:
        """Public lookup; unknown, inactive and deleted codes all read as 404"""
        affiliate = await self.resolve_by_code(code)
        if not affiliate:
            raise NotFoundException("Affiliate not found", "AFFILIATE_NOT_FOUND")
        return affiliate

    async def get_affiliate(self, affiliate_id: uuid.UUID) -> Affiliate:
        result = await self.db.execute(
            select(Affiliate).where(
                Affiliate.id == affiliate_id,
                Affiliate.is_deleted == False
            )
        )
        affiliate = result.scalar_one_or_none()
        if not affiliate:
            raise NotFoundException("Affiliate not found", "AFFILIATE_NOT_FOUND")
        return affiliate

    async def list_affiliates(
        self,
        include_inactive: bool = True,
        page: int = 1,
        size: int = 50
    ) -> Dict[str, Any]:
        """List affiliates, newest first"""
        query = select(Affiliate).where(Affiliate.is_deleted == False)
        if not include_inactive:
            query = query.where(Affiliate.is_active == True)

        total = await self.db.scalar(
            select(func.count()).select_from(query.subquery())
        )
        result = await self.db.execute(
            query.order_by(Affiliate.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return {"items": list(result.scalars().all()), "total": total or 0}

    # Administration

    async def _code_taken(self, code: str) -> bool:
        existing = await self.db.scalar(
            select(Affiliate.id).where(Affiliate.code == code)
        )
        return existing is not None

    async def _unique_code(self) -> str:
        while True:
            code = SecurityUtils.generate_referral_code()
            if not await self._code_taken(code):
                return code

    async def _insert(self, affiliate: Affiliate) -> None:
        self.db.add(affiliate)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateResourceException("Affiliate", "code", affiliate.code)

    async def create_affiliate(self, data: AffiliateCreate) -> Affiliate:
        """
        Create a new affiliate

        Args:
            data: Affiliate details; a code is generated when none is given

        Returns:
            Created affiliate

        Raises:
            ValidationException: If the commission rate is out of range
            DuplicateResourceException: If the code already exists
        """
        rate = normalize_commission_rate(
            data.commission_rate if data.commission_rate is not None
            else settings.DEFAULT_COMMISSION_RATE
        )

        if data.code:
            if await self._code_taken(data.code):
                raise DuplicateResourceException("Affiliate", "code", data.code)
            code = data.code
        else:
            code = await self._unique_code()

        affiliate = Affiliate(
            code=code,
            name=data.name,
            email=data.email,
            commission_rate=rate,
            clicks=0,
            sales_count=0,
            total_revenue=0,
            total_commission=0,
            total_paid=0,
            is_active=True,
        )
        await self._insert(affiliate)
        await self.db.commit()

        logger.info(f"Affiliate {affiliate.code} created at rate {rate}")
        return affiliate

    async def register_affiliate(self, user_id: uuid.UUID, data: AffiliateRegister) -> Affiliate:
        """
        Self-service signup: create an affiliate for the user and link it

        Raises:
            ConflictException: If the user already runs an affiliate account
        """
        user = await self.db.get(User, user_id)
        if not user or not user.is_active:
            raise NotFoundException("User not found", "USER_NOT_FOUND")
        if user.affiliate_id:
            raise ConflictException("User is already an affiliate", "ALREADY_AFFILIATE")

        if data.code:
            if await self._code_taken(data.code):
                raise DuplicateResourceException("Affiliate", "code", data.code)
            code = data.code
        else:
            code = await self._unique_code()

        affiliate = Affiliate(
            code=code,
            name=data.name or user.name or user.email,
            email=user.email,
            commission_rate=normalize_commission_rate(settings.DEFAULT_COMMISSION_RATE),
            clicks=0,
            sales_count=0,
            total_revenue=0,
            total_commission=0,
            total_paid=0,
            is_active=True,
        )
        await self._insert(affiliate)

        user.affiliate_id = affiliate.id
        if user.role == UserRole.CUSTOMER:
            user.role = UserRole.AFFILIATE
        await self.db.commit()

        logger.info(f"User {user_id} registered as affiliate {affiliate.code}")
        return affiliate

    async def update_affiliate(self, affiliate_id: uuid.UUID, data: AffiliateUpdate) -> Affiliate:
        """Update name, email, rate or active flag; totals are never edited here"""
        affiliate = await self.get_affiliate(affiliate_id)
        update_data = data.model_dump(exclude_unset=True)

        if "commission_rate" in update_data:
            if update_data["commission_rate"] is None:
                raise ValidationException(
                    "Commission rate cannot be null", "INVALID_COMMISSION_RATE"
                )
            update_data["commission_rate"] = normalize_commission_rate(
                update_data["commission_rate"]
            )
        if "name" in update_data and update_data["name"] is None:
            raise ValidationException("Name cannot be null")
        if "is_active" in update_data and update_data["is_active"] is None:
            raise ValidationException("isActive cannot be null")

        for field, value in update_data.items():
            setattr(affiliate, field, value)

        await self.db.flush()
        await self.db.commit()
        logger.info(f"Affiliate {affiliate.code} updated: {sorted(update_data)}")
        return affiliate

    async def soft_delete_affiliate(self, affiliate_id: uuid.UUID) -> Affiliate:
        """
        Hide an affiliate from code resolution

        Existing orders keep their attribution and ledger entries.
        """
        affiliate = await self.get_affiliate(affiliate_id)
        affiliate.soft_delete()
        affiliate.is_active = False
        await self.db.flush()
        await self.db.commit()
        logger.info(f"Affiliate {affiliate.code} soft deleted")
        return affiliate

    # Commission ledger

    async def credit_commission(
        self,
        affiliate_id: uuid.UUID,
        order_id: uuid.UUID,
        order_amount: int,
        commission_rate: Decimal
    ) -> Optional[CommissionEntry]:
        """
        Credit one order to an affiliate

        Inserts the ledger entry and bumps the running totals in a single
        UPDATE. Runs inside the caller's transaction and never commits.

        Returns:
            The new entry, or None when this order was already credited
        """
        existing = await self.db.scalar(
            select(CommissionEntry.id).where(CommissionEntry.order_id == order_id)
        )
        if existing:
            logger.warning(f"Commission for order {order_id} already credited, skipping")
            return None

        commission = calculate_commission(order_amount, commission_rate)

        entry = CommissionEntry(
            order_id=order_id,
            affiliate_id=affiliate_id,
            order_amount=order_amount,
            commission_rate=commission_rate,
            commission_amount=commission,
            status=CommissionStatus.CREDITED,
        )
        self.db.add(entry)
        await self.db.flush()

        await self.db.execute(
            update(Affiliate)
            .where(Affiliate.id == affiliate_id)
            .values(
                sales_count=Affiliate.sales_count + 1,
                total_revenue=Affiliate.total_revenue + order_amount,
                total_commission=Affiliate.total_commission + commission,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )

        logger.info(
            f"Credited commission {commission} to affiliate {affiliate_id} for order {order_id}"
        )
        return entry

    async def reverse_commission(self, order_id: uuid.UUID) -> Optional[CommissionEntry]:
        """
        Reverse the credit for a refunded order

        Runs inside the caller's transaction and never commits.

        Returns:
            The reversed entry, or None when nothing was credited
        """
        entry = await self.db.scalar(
            select(CommissionEntry).where(CommissionEntry.order_id == order_id)
        )
        if not entry:
            return None

        result = await self.db.execute(
            update(CommissionEntry)
            .where(
                CommissionEntry.id == entry.id,
                CommissionEntry.status == CommissionStatus.CREDITED
            )
            .values(status=CommissionStatus.REVERSED, reversed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None

        await self.db.execute(
            update(Affiliate)
            .where(Affiliate.id == entry.affiliate_id)
            .values(
                sales_count=Affiliate.sales_count - 1,
                total_revenue=Affiliate.total_revenue - entry.order_amount,
                total_commission=Affiliate.total_commission - entry.commission_amount,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(entry)

        logger.info(
            f"Reversed commission {entry.commission_amount} of affiliate "
            f"{entry.affiliate_id} for order {order_id}"
        )
        return entry

    async def list_commissions(
        self,
        affiliate_id: uuid.UUID,
        status: Optional[CommissionStatus] = None
    ) -> List[CommissionEntry]:
        """Ledger entries of one affiliate, newest first"""
        await self.get_affiliate(affiliate_id)

        query = select(CommissionEntry).where(CommissionEntry.affiliate_id == affiliate_id)
        if status:
            query = query.where(CommissionEntry.status == status)

        result = await self.db.execute(query.order_by(CommissionEntry.created_at.desc()))
        return list(result.scalars().all())

    async def record_payout(
        self,
        affiliate_id: uuid.UUID,
        data: PayoutCreate,
        created_by: Optional[uuid.UUID] = None
    ) -> AffiliatePayout:
        """
        Record money paid out to an affiliate

        Raises:
            ValidationException: If the payout exceeds the unpaid balance
        """
        await self.get_affiliate(affiliate_id)

        result = await self.db.execute(
            update(Affiliate)
            .where(
                Affiliate.id == affiliate_id,
                Affiliate.total_paid + data.amount <= Affiliate.total_commission
            )
            .values(
                total_paid=Affiliate.total_paid + data.amount,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ValidationException(
                "Payout exceeds the unpaid commission balance",
                "PAYOUT_EXCEEDS_BALANCE"
            )

        payout = AffiliatePayout(
            affiliate_id=affiliate_id,
            amount=data.amount,
            reference=data.reference,
            note=data.note,
            created_by=created_by,
        )
        self.db.add(payout)
        await self.db.flush()
        await self.db.commit()

        logger.info(f"Recorded payout {data.amount} for affiliate {affiliate_id}")
        return payout

    async def record_click(self, affiliate_id: uuid.UUID) -> None:
        """Bump the click counter; caller commits"""
        await self.db.execute(
            update(Affiliate)
            .where(Affiliate.id == affiliate_id)
            .values(clicks=Affiliate.clicks + 1)
            .execution_options(synchronize_session=False)
        )

    async def stats(self, affiliate_id: uuid.UUID) -> Dict[str, Any]:
        """Fresh totals for one affiliate, read straight from the table"""
        result = await self.db.execute(
            select(Affiliate)
            .where(Affiliate.id == affiliate_id)
            .execution_options(populate_existing=True)
        )
        affiliate = result.scalar_one_or_none()
        if not affiliate:
            raise NotFoundException("Affiliate not found", "AFFILIATE_NOT_FOUND")
        return {
            "clicks": affiliate.clicks,
            "sales_count": affiliate.sales_count,
            "total_revenue": affiliate.total_revenue,
            "total_commission": affiliate.total_commission,
            "total_paid": affiliate.total_paid,
            "balance": affiliate.total_commission - affiliate.total_paid,
        }
