"""
Razorpay payment gateway integration
"""

import razorpay
import hmac
import hashlib
import asyncio
import logging
from functools import partial
from typing import Dict, Any, Optional, Union

from app.core.config import settings
from app.core.exceptions import GatewayException

logger = logging.getLogger(__name__)

def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """
    Expected checkout signature

    Args:
        order_id: Gateway order ID
        payment_id: Gateway payment ID
        secret: Key secret shared with the gateway

    Returns:
        Hex encoded HMAC-SHA256 over "order_id|payment_id"
    """
    message = f"{order_id}|{payment_id}"
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()

def verify_payment_signature(
    order_id: str,
    payment_id: str,
    signature: Optional[str],
    secret: str
) -> bool:
    """Recompute the checkout signature and compare in constant time"""
    if not order_id or not payment_id or not signature:
        return False
    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature.strip())

def verify_webhook_signature(
    body: Union[bytes, str],
    signature: Optional[str],
    secret: Optional[str]
) -> bool:
    """Verify a webhook delivery against the raw request body"""
    if not signature or not secret:
        return False
    if isinstance(body, str):
        body = body.encode("utf-8")
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip())

class RazorpayClient:
    """
    Razorpay API client wrapper

    The SDK is blocking, so every call is pushed to the default executor.
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None
    ):
        self.key_id = key_id or settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret or settings.RAZORPAY_KEY_SECRET
        self.client = razorpay.Client(auth=(self.key_id, self.key_secret))

    async def _call(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def create_order(
        self,
        amount: int,
        currency: str = "INR",
        receipt: Optional[str] = None,
        notes: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Create Razorpay order

        Args:
            amount: Amount in smallest currency unit (paise for INR)
            currency: Currency code
            receipt: Receipt number
            notes: Additional notes

        Returns:
            Razorpay order details
        """
        order_data = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt or "",
            "notes": notes or {}
        }
        try:
            return await self._call(self.client.order.create, data=order_data)
        except Exception as e:
            logger.error(f"Razorpay order creation failed: {e}")
            raise GatewayException(f"Failed to create payment order: {e}")

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        """
        Fetch payment details

        Args:
            payment_id: Razorpay payment ID

        Returns:
            Payment details
        """
        try:
            return await self._call(self.client.payment.fetch, payment_id)
        except Exception as e:
            logger.error(f"Razorpay payment fetch failed for {payment_id}: {e}")
            raise GatewayException(f"Failed to fetch payment: {e}")

    async def create_refund(
        self,
        payment_id: str,
        amount: Optional[int] = None,
        notes: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Refund a captured payment

        Args:
            payment_id: Razorpay payment ID
            amount: Refund amount (None for full refund)
            notes: Additional notes

        Returns:
            Refund details
        """
        refund_data: Dict[str, Any] = {}
        if amount is not None:
            refund_data["amount"] = amount
        if notes:
            refund_data["notes"] = notes

        try:
            return await self._call(self.client.payment.refund, payment_id, refund_data)
        except Exception as e:
            logger.error(f"Razorpay refund failed for {payment_id}: {e}")
            raise GatewayException(f"Failed to create refund: {e}")

    def verify_payment_signature(
        self,
        order_id: str,
        payment_id: str,
        signature: Optional[str]
    ) -> bool:
        """Verify a checkout callback with this client's key secret"""
        return verify_payment_signature(order_id, payment_id, signature, self.key_secret)

def get_payment_gateway() -> RazorpayClient:
    """Gateway dependency; tests override it with an in-memory fake"""
    return RazorpayClient()
