"""
Payment service layer
Verifies gateway callbacks and webhooks and drives the order to paid
"""

from typing import Dict, Any, Optional
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
import enum
import json
import uuid
import logging

from app.models import Order, OrderStatus
from app.core.config import settings
from app.core.exceptions import (
    BadRequestException,
    ForbiddenException,
    SignatureMismatchException,
    PaymentMismatchException,
    AlreadyProcessedException,
    ExpiredException
)
from app.api.v1.orders.services import OrderService
from app.utils.helpers import utcnow, ensure_utc
from .razorpay_client import RazorpayClient, verify_webhook_signature
from .webhooks import WebhookHandler

logger = logging.getLogger(__name__)

class WorkflowOutcome(str, enum.Enum):
    """Where a verification attempt ended up"""
    PAID_COMMISSION_CREDITED = "paid_commission_credited"
    PAID_NO_AFFILIATE = "paid_no_affiliate"
    VERIFICATION_FAILED = "verification_failed"
    EXPIRED = "expired"
    PAYMENT_FAILED = "payment_failed"

    @classmethod
    def for_paid(cls, order: Order) -> "WorkflowOutcome":
        if order.commission_applied:
            return cls.PAID_COMMISSION_CREDITED
        return cls.PAID_NO_AFFILIATE

@dataclass
class VerificationResult:
    order: Order
    outcome: WorkflowOutcome
    credited: bool = False
    # True only for the request that moved the order to paid
    transitioned: bool = False

@dataclass
class WebhookResult:
    status: str
    event: Optional[str] = None
    outcome: Optional[str] = None
    order_id: Optional[uuid.UUID] = None
    transitioned: bool = False

class PaymentService:
    """Payment service for processing transactions"""

    def __init__(self, db: AsyncSession, gateway: Optional[RazorpayClient] = None):
        self.db = db
        self.orders = OrderService(db, gateway)

    @property
    def gateway(self) -> RazorpayClient:
        return self.orders.gateway

    def _check_not_expired(self, order: Order) -> None:
        expires_at = ensure_utc(order.expires_at)
        if expires_at and expires_at < utcnow():
            logger.info(f"Order {order.id} expired at {expires_at.isoformat()}")
            raise ExpiredException(f"Order {order.id} expired")

    def _check_gateway_payment(self, order: Order, payment: Dict[str, Any]) -> None:
        """Compare the gateway's view of a payment with the ledger order"""
        if payment.get("order_id") != order.gateway_order_id:
            raise PaymentMismatchException("Payment belongs to a different gateway order")
        if payment.get("amount") is not None and int(payment["amount"]) != order.amount:
            raise PaymentMismatchException(
                f"Paid amount {payment['amount']} does not match order amount {order.amount}"
            )
        currency = payment.get("currency")
        if currency and currency.upper() != order.currency:
            raise PaymentMismatchException(
                f"Paid currency {currency} does not match order currency {order.currency}"
            )
        if payment.get("status") == "failed":
            raise PaymentMismatchException("Payment has failed at the gateway")

    async def verify_payment(
        self,
        order_id: uuid.UUID,
        gateway_order_id: str,
        gateway_payment_id: str,
        gateway_signature: str,
        buyer_id: Optional[uuid.UUID] = None
    ) -> VerificationResult:
        """
        Verify a checkout callback and settle the order

        Safe to retry with the same identifiers: a replay of a successful
        verification returns the same order and never credits twice.

        Args:
            order_id: Ledger order ID
            gateway_order_id: Gateway order ID from the callback
            gateway_payment_id: Gateway payment ID from the callback
            gateway_signature: Signature from the callback
            buyer_id: When set, the order must belong to this buyer

        Returns:
            VerificationResult

        Raises:
            NotFoundException: If order not found
            SignatureMismatchException: If the signature doesn't verify
            AlreadyProcessedException: If the order was settled otherwise
            ExpiredException: If the order can no longer be paid
            PaymentMismatchException: If the gateway payment doesn't match
            GatewayException: If the gateway can't be reached
        """
        order = await self.orders.get_order(order_id)

        if buyer_id is not None and order.buyer_id != buyer_id:
            raise ForbiddenException("Order belongs to another buyer")

        if (
            not order.gateway_order_id
            or gateway_order_id != order.gateway_order_id
            or not self.gateway.verify_payment_signature(
                order.gateway_order_id, gateway_payment_id, gateway_signature
            )
        ):
            logger.warning(
                f"Signature verification failed for order {order_id} "
                f"(gateway order {gateway_order_id}, payment {gateway_payment_id})"
            )
            raise SignatureMismatchException()

        if self.orders.check_replay(order, gateway_payment_id):
            logger.info(f"Order {order_id} already paid by {gateway_payment_id}, replay accepted")
            return VerificationResult(order=order, outcome=WorkflowOutcome.for_paid(order))

        self._check_not_expired(order)

        if settings.VERIFY_PAYMENT_AMOUNT:
            payment = await self.gateway.fetch_payment(gateway_payment_id)
            try:
                self._check_gateway_payment(order, payment)
            except PaymentMismatchException as e:
                logger.error(f"Gateway payment {gateway_payment_id} rejected for order {order_id}: {e.detail}")
                raise

        transition = await self.orders.mark_paid(order.id, gateway_payment_id, gateway_signature)
        return VerificationResult(
            order=transition.order,
            outcome=WorkflowOutcome.for_paid(transition.order),
            credited=transition.credited,
            transitioned=transition.transitioned
        )

    async def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookResult:
        """
        Process a signed gateway webhook

        Raises:
            SignatureMismatchException: If the webhook signature doesn't verify
            BadRequestException: If the payload isn't a webhook
        """
        if not verify_webhook_signature(raw_body, signature, settings.RAZORPAY_WEBHOOK_SECRET):
            logger.warning("Webhook signature verification failed")
            raise SignatureMismatchException("Webhook signature verification failed")

        try:
            data = json.loads(raw_body)
        except ValueError:
            raise BadRequestException("Malformed webhook payload", "INVALID_PAYLOAD")

        if not WebhookHandler.validate_webhook_data(data):
            raise BadRequestException("Malformed webhook payload", "INVALID_PAYLOAD")

        event = data["event"]
        handler_name = WebhookHandler.get_event_handler(event)
        if not handler_name:
            logger.info(f"Ignoring webhook event {event}")
            return WebhookResult(status="ignored", event=event)

        result = await getattr(self, handler_name)(data, signature)
        result.event = event
        return result

    async def handle_payment_captured(self, data: Dict[str, Any], signature: Optional[str]) -> WebhookResult:
        """payment.captured / order.paid: the same transition a verified callback makes"""
        payment = WebhookHandler.payment_entity(data)
        gateway_order_id = WebhookHandler.gateway_order_id(data)
        gateway_payment_id = payment.get("id")

        if not gateway_order_id or not gateway_payment_id:
            logger.warning("Captured webhook without order or payment id")
            return WebhookResult(status="ignored")

        order = await self.orders.get_order_by_gateway_id(gateway_order_id)
        if not order:
            logger.warning(f"Captured webhook for unknown gateway order {gateway_order_id}")
            return WebhookResult(status="ignored")

        try:
            if self.orders.check_replay(order, gateway_payment_id):
                return WebhookResult(
                    status="processed",
                    outcome=WorkflowOutcome.for_paid(order).value,
                    order_id=order.id
                )
        except AlreadyProcessedException:
            logger.warning(
                f"Captured payment {gateway_payment_id} for order {order.id} "
                f"already in status {order.status.value}"
            )
            return WebhookResult(status="ignored", order_id=order.id)

        try:
            self._check_not_expired(order)
            self._check_gateway_payment(order, payment)
        except ExpiredException:
            return WebhookResult(
                status="ignored", outcome=WorkflowOutcome.EXPIRED.value, order_id=order.id
            )
        except PaymentMismatchException as e:
            logger.error(f"Captured payment {gateway_payment_id} rejected for order {order.id}: {e.detail}")
            return WebhookResult(
                status="ignored",
                outcome=WorkflowOutcome.VERIFICATION_FAILED.value,
                order_id=order.id
            )

        try:
            transition = await self.orders.mark_paid(order.id, gateway_payment_id, signature)
        except AlreadyProcessedException:
            return WebhookResult(status="ignored", order_id=order.id)

        return WebhookResult(
            status="processed",
            outcome=WorkflowOutcome.for_paid(transition.order).value,
            order_id=transition.order.id,
            transitioned=transition.transitioned
        )

    async def handle_payment_failed(self, data: Dict[str, Any], signature: Optional[str]) -> WebhookResult:
        """payment.failed: note the declined attempt, the order stays payable"""
        gateway_order_id = WebhookHandler.gateway_order_id(data)
        if not gateway_order_id:
            return WebhookResult(status="ignored")

        order = await self.orders.record_failed_attempt(gateway_order_id, WebhookHandler.failure_reason(data))
        if not order:
            return WebhookResult(status="ignored")
        if order.status != OrderStatus.CREATED:
            return WebhookResult(status="ignored", outcome=order.status.value, order_id=order.id)
        return WebhookResult(
            status="processed",
            outcome=WorkflowOutcome.PAYMENT_FAILED.value,
            order_id=order.id
        )
