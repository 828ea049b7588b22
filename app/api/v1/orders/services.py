"""
Order service layer
Handles the order ledger: creation, payment transition, cancellation and refunds
"""

from typing import List, Optional, Dict, Any, Tuple, NamedTuple
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
import uuid
import logging

from app.models import Order, OrderStatus, Ebook, EbookStatus, User
from app.core.config import settings
from app.core.exceptions import (
    NotFoundException,
    ValidationException,
    AlreadyProcessedException,
    GatewayException,
    InvalidStatusTransitionException
)
from app.utils.helpers import utcnow
from app.api.v1.affiliates.services import AffiliateService
from app.api.v1.payments.razorpay_client import RazorpayClient
from .state_machine import OrderStateMachine

logger = logging.getLogger(__name__)

class PaidTransition(NamedTuple):
    order: Order
    # Commission credited by this call
    credited: bool
    # False when a concurrent request had already settled the order
    transitioned: bool = True

class OrderService:
    """Order service for business logic"""

    def __init__(self, db: AsyncSession, gateway: Optional[RazorpayClient] = None):
        self.db = db
        self._gateway = gateway
        self.affiliate_service = AffiliateService(db)
        self.state_machine = OrderStateMachine()

    @property
    def gateway(self) -> RazorpayClient:
        if self._gateway is None:
            self._gateway = RazorpayClient()
        return self._gateway

    async def _reload(self, order_id: uuid.UUID) -> Order:
        """Re-read an order, discarding whatever the session holds"""
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def create_order(
        self,
        buyer_id: uuid.UUID,
        amount: int,
        product_id: Optional[uuid.UUID] = None,
        currency: Optional[str] = None,
        referral_code: Optional[str] = None
    ) -> Tuple[Order, Dict[str, Any]]:
        """
        Create a ledger order and its gateway order

        The ledger row is flushed first so its id can serve as the gateway
        receipt; a gateway failure rolls the row back, so either both exist
        or neither does.

        Args:
            buyer_id: Buyer user ID
            amount: Amount in minor units
            product_id: Ebook being purchased
            currency: Currency code, defaults to the ebook's or the store's
            referral_code: Referral code as received from the client

        Returns:
            Tuple of (order, gateway order payload)

        Raises:
            ValidationException: If the amount is invalid
            NotFoundException: If the buyer or product doesn't exist
            GatewayException: If the gateway order cannot be created
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationException(
                "Amount must be a positive integer in minor units",
                "INVALID_AMOUNT"
            )

        buyer = await self.db.get(User, buyer_id)
        if not buyer or not buyer.is_active:
            raise NotFoundException("Buyer not found", "USER_NOT_FOUND")

        if product_id is not None:
            ebook = await self.db.get(Ebook, product_id)
            if not ebook or ebook.status == EbookStatus.DRAFT:
                raise NotFoundException(f"Product {product_id} not found", "PRODUCT_NOT_FOUND")
            if ebook.price is not None and amount != ebook.price:
                raise ValidationException(
                    f"Amount {amount} does not match the product price {ebook.price}",
                    "AMOUNT_MISMATCH"
                )
            currency = currency or ebook.currency

        currency = (currency or settings.DEFAULT_CURRENCY).upper()

        # Attribution is snapshotted now; later rate changes don't touch this order
        affiliate = await self.affiliate_service.resolve_by_code(referral_code)
        if referral_code and not affiliate:
            logger.info(f"Referral code {referral_code!r} did not resolve to an active affiliate")

        expires_at = None
        if settings.ORDER_EXPIRY_MINUTES > 0:
            expires_at = utcnow() + timedelta(minutes=settings.ORDER_EXPIRY_MINUTES)

        order = Order(
            buyer_id=buyer_id,
            product_id=product_id,
            amount=amount,
            currency=currency,
            referral_code=referral_code.strip() if referral_code else None,
            affiliate_id=affiliate.id if affiliate else None,
            commission_rate=affiliate.commission_rate if affiliate else None,
            commission_applied=False,
            status=OrderStatus.CREATED,
            expires_at=expires_at,
        )
        self.db.add(order)
        await self.db.flush()

        try:
            gateway_order = await self.gateway.create_order(
                amount=amount,
                currency=currency,
                receipt=str(order.id),
                notes={
                    "order_id": str(order.id),
                    "buyer_id": str(buyer_id),
                    "referral_code": order.referral_code or ""
                }
            )
        except GatewayException:
            await self.db.rollback()
            logger.error(f"Gateway order creation failed, discarded ledger order for buyer {buyer_id}")
            raise

        order.gateway_order_id = gateway_order["id"]
        await self.db.flush()
        await self.db.commit()

        logger.info(
            f"Order {order.id} created for buyer {buyer_id}: amount={amount} {currency}, "
            f"gateway_order={order.gateway_order_id}, affiliate={order.affiliate_id}"
        )
        return order, gateway_order

    async def get_order(self, order_id: uuid.UUID) -> Order:
        """
        Get order by ID

        Raises:
            NotFoundException: If order not found
        """
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFoundException("Order not found", "ORDER_NOT_FOUND")
        return order

    async def get_order_by_gateway_id(self, gateway_order_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(Order.gateway_order_id == gateway_order_id)
        )
        return result.scalar_one_or_none()

    async def get_orders_by_buyer(self, buyer_id: uuid.UUID) -> List[Order]:
        """All orders of one buyer, newest first"""
        result = await self.db.execute(
            select(Order)
            .where(Order.buyer_id == buyer_id)
            .order_by(Order.created_at.desc(), Order.id)
        )
        return list(result.scalars().all())

    def check_replay(self, order: Order, gateway_payment_id: str) -> bool:
        """
        Decide what a settled order means for an incoming payment

        Returns:
            False if the order is still open, True if it is already paid
            by this very payment

        Raises:
            AlreadyProcessedException: For any other settled order
        """
        status = OrderStatus(order.status)
        if status == OrderStatus.CREATED:
            return False
        if status == OrderStatus.PAID and order.gateway_payment_id == gateway_payment_id:
            return True
        raise AlreadyProcessedException(
            f"Order {order.id} is already {status.value}"
        )

    async def mark_paid(
        self,
        order_id: uuid.UUID,
        gateway_payment_id: str,
        gateway_signature: Optional[str]
    ) -> "PaidTransition":
        """
        Move a created order to paid and credit its affiliate

        The status flip is a single conditional UPDATE; only the request
        whose UPDATE hits the row credits commission, and the credit is
        committed together with the status change.

        Returns:
            PaidTransition with the re-read order

        Raises:
            AlreadyProcessedException: If another payment or action settled
                the order first
        """
        now = utcnow()
        try:
            result = await self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == OrderStatus.CREATED)
                .values(
                    status=OrderStatus.PAID,
                    gateway_payment_id=gateway_payment_id,
                    gateway_signature=gateway_signature,
                    paid_at=now,
                    updated_at=now
                )
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            await self.db.rollback()
            logger.warning(f"Payment {gateway_payment_id} is already recorded against another order")
            raise AlreadyProcessedException("Payment has already been applied to another order")

        if result.rowcount == 0:
            # Lost the race; report the winner's outcome without crediting
            order = await self._reload(order_id)
            await self.db.commit()
            self.check_replay(order, gateway_payment_id)
            logger.info(f"Order {order_id} was settled concurrently, no credit applied")
            return PaidTransition(order, credited=False, transitioned=False)

        order = await self._reload(order_id)
        credited = False

        if order.affiliate_id and order.commission_rate is not None:
            entry = await self.affiliate_service.credit_commission(
                affiliate_id=order.affiliate_id,
                order_id=order.id,
                order_amount=order.amount,
                commission_rate=order.commission_rate
            )
            if entry:
                order.commission_applied = True
                credited = True
                await self.db.flush()

        await self.db.commit()

        logger.info(
            f"Order {order.id} paid by {gateway_payment_id}"
            + (f", commission credited to {order.affiliate_id}" if credited else "")
        )
        return PaidTransition(order, credited=credited)

    async def record_failed_attempt(self, gateway_order_id: str, reason: Optional[str] = None) -> Optional[Order]:
        """
        Record a declined payment attempt reported by the gateway

        The buyer may retry on the same gateway order, so the order stays
        ``created``; only the reason and the attempt count change.
        """
        order = await self.get_order_by_gateway_id(gateway_order_id)
        if not order:
            logger.warning(f"Payment failure for unknown gateway order {gateway_order_id}")
            return None

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.CREATED)
            .values(
                failure_reason=(reason or "Payment failed")[:500],
                failed_attempts=Order.failed_attempts + 1,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        order = await self._reload(order.id)
        await self.db.commit()

        if result.rowcount:
            logger.info(f"Order {order.id} payment attempt {order.failed_attempts} failed: {reason}")
        else:
            logger.info(f"Ignored payment failure for order {order.id} in status {order.status.value}")
        return order

    async def cancel_order(self, order_id: uuid.UUID, reason: Optional[str] = None) -> Order:
        """
        Cancel an unpaid order

        Raises:
            NotFoundException: If order not found
            InvalidStatusTransitionException: If the order is no longer open
        """
        order = await self.get_order(order_id)
        if not self.state_machine.is_cancellable(order.status):
            raise InvalidStatusTransitionException(order.status.value, OrderStatus.CANCELLED.value)

        now = utcnow()
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.CREATED)
            .values(
                status=OrderStatus.CANCELLED,
                cancelled_at=now,
                failure_reason=reason,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        order = await self._reload(order_id)
        if result.rowcount == 0:
            await self.db.rollback()
            raise InvalidStatusTransitionException(order.status.value, OrderStatus.CANCELLED.value)

        await self.db.commit()
        logger.info(f"Order {order_id} cancelled")
        return order

    async def refund_order(self, order_id: uuid.UUID, reason: Optional[str] = None) -> Order:
        """
        Refund a paid order and reverse its commission

        The status flip happens first inside the transaction, so a gateway
        failure rolls everything back and two refunds can't both go out.

        Raises:
            NotFoundException: If order not found
            InvalidStatusTransitionException: If the order isn't paid
            GatewayException: If the gateway refund fails
        """
        order = await self.get_order(order_id)
        if not self.state_machine.is_refundable(order.status):
            raise InvalidStatusTransitionException(order.status.value, OrderStatus.REFUNDED.value)

        now = utcnow()
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PAID)
            .values(status=OrderStatus.REFUNDED, refunded_at=now, notes=reason, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            order = await self._reload(order_id)
            await self.db.rollback()
            raise InvalidStatusTransitionException(order.status.value, OrderStatus.REFUNDED.value)

        try:
            refund = await self.gateway.create_refund(
                order.gateway_payment_id,
                amount=order.amount,
                notes={"order_id": str(order_id), "reason": reason or ""}
            )
        except GatewayException:
            await self.db.rollback()
            raise

        await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(refund_reference=refund.get("id"))
            .execution_options(synchronize_session=False)
        )
        reversed_entry = await self.affiliate_service.reverse_commission(order_id)

        order = await self._reload(order_id)
        await self.db.commit()

        logger.info(
            f"Order {order_id} refunded ({refund.get('id')})"
            + (f", commission {reversed_entry.commission_amount} reversed" if reversed_entry else "")
        )
        return order
