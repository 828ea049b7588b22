"""Payment notification dispatcher"""

from typing import Optional, Dict, Any, Iterable
from pathlib import Path
from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy import select
import asyncio
import mimetypes
import logging
import uuid

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.models import Order, OrderStatus, User, Ebook, Affiliate, CommissionEntry, CommissionStatus
from app.services.email_service import EmailService

logger = logging.getLogger(__name__)

BUYER_RECEIPT = "buyer_receipt"
AFFILIATE_ALERT = "affiliate_alert"
ALL_CHANNELS = (BUYER_RECEIPT, AFFILIATE_ALERT)

class NotificationDispatcher:
    """
    Sends the emails that follow a successful payment

    Runs after the payment transaction has committed, on its own session.
    Nothing raised here reaches the payment response.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        email_service: Optional[EmailService] = None
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.email_service = email_service or EmailService()

    async def _load(self, order_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        """Snapshot everything the emails need, then release the session"""
        async with self.session_factory() as session:
            order = await session.get(Order, order_id)
            if not order:
                logger.error(f"Notification skipped, order {order_id} not found")
                return None
            if order.status != OrderStatus.PAID:
                logger.warning(f"Notification skipped, order {order_id} is {order.status.value}")
                return None

            buyer = await session.get(User, order.buyer_id)
            ebook = await session.get(Ebook, order.product_id) if order.product_id else None
            affiliate = await session.get(Affiliate, order.affiliate_id) if order.affiliate_id else None
            entry = await session.scalar(
                select(CommissionEntry).where(CommissionEntry.order_id == order.id)
            )
            await session.commit()

            return {
                "order": order,
                "buyer": buyer,
                "ebook": ebook,
                "affiliate": affiliate,
                "entry": entry,
            }

    async def ebook_attachment(self, ebook: Optional[Ebook]) -> Optional[Dict[str, Any]]:
        """The ebook file as an attachment, if the product maps to one"""
        if not ebook or not ebook.file_path:
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_attachment, ebook)

    def _read_attachment(self, ebook: Ebook) -> Optional[Dict[str, Any]]:
        # Blocking file I/O, only called through the executor
        root = Path(settings.EBOOK_ASSET_DIR).resolve()
        path = (root / ebook.file_path).resolve()
        if root != path and root not in path.parents:
            logger.error(f"Ebook {ebook.id} asset path escapes the asset directory: {ebook.file_path}")
            return None
        if not path.is_file():
            logger.warning(f"Ebook {ebook.id} asset not found at {path}")
            return None

        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return {
            "filename": path.name,
            "content": path.read_bytes(),
            "content_type": content_type,
        }

    async def _send_buyer_receipt(self, data: Dict[str, Any]) -> Optional[bool]:
        order, buyer, ebook = data["order"], data["buyer"], data["ebook"]
        if not buyer or not buyer.email:
            logger.warning(f"Order {order.id} buyer has no email, receipt skipped")
            return None

        attachment = await self.ebook_attachment(ebook)
        receipt_data = {
            "buyer_name": buyer.name or buyer.email,
            "product_title": ebook.title if ebook else "your purchase",
            "amount": order.amount,
            "currency": order.currency,
            "order_id": str(order.id),
            "payment_id": order.gateway_payment_id,
            "paid_at": order.paid_at.isoformat() if order.paid_at else "",
            "has_attachment": attachment is not None,
        }
        return await self.email_service.send_purchase_receipt(
            to_email=buyer.email,
            receipt_data=receipt_data,
            attachments=[attachment] if attachment else None
        )

    async def _send_affiliate_alert(self, data: Dict[str, Any]) -> Optional[bool]:
        order, affiliate, entry = data["order"], data["affiliate"], data["entry"]
        if not affiliate or not entry or entry.status != CommissionStatus.CREDITED:
            return None
        if not affiliate.email:
            logger.info(f"Affiliate {affiliate.code} has no email, alert skipped")
            return None

        buyer, ebook = data["buyer"], data["ebook"]
        alert_data = {
            "affiliate_name": affiliate.name,
            "code": affiliate.code,
            "buyer_name": (buyer.name or buyer.email) if buyer else "A customer",
            "product_title": ebook.title if ebook else "a purchase",
            "amount": entry.order_amount,
            "commission_amount": entry.commission_amount,
            "currency": order.currency,
            "paid_at": order.paid_at.isoformat() if order.paid_at else "",
        }
        return await self.email_service.send_commission_alert(affiliate.email, alert_data)

    async def dispatch_payment_notifications(
        self,
        order_id: uuid.UUID,
        channels: Iterable[str] = ALL_CHANNELS
    ) -> Dict[str, bool]:
        """
        Send the buyer receipt and the affiliate alert for a paid order

        Returns:
            Delivery result per attempted channel
        """
        results: Dict[str, bool] = {}
        try:
            data = await self._load(order_id)
        except Exception as e:
            logger.error(f"Failed to load order {order_id} for notifications: {e}")
            return results
        if not data:
            return results

        senders = {
            BUYER_RECEIPT: self._send_buyer_receipt,
            AFFILIATE_ALERT: self._send_affiliate_alert,
        }
        for channel in channels:
            if channel == AFFILIATE_ALERT and not data["order"].commission_applied:
                continue
            try:
                sent = await senders[channel](data)
                # None means there was nobody to notify
                if sent is not None:
                    results[channel] = sent
            except Exception as e:
                logger.error(f"Failed to send {channel} for order {order_id}: {e}")
                results[channel] = False

        failed = [channel for channel, ok in results.items() if not ok]
        if failed:
            logger.error(f"Notifications for order {order_id} not delivered: {failed}")
        else:
            logger.info(f"Notifications for order {order_id} delivered: {list(results)}")
        return results

async def dispatch_payment_notifications(
    order_id: uuid.UUID,
    session_factory: Optional[async_sessionmaker] = None
) -> Dict[str, bool]:
    """Background task entry point"""
    dispatcher = NotificationDispatcher(session_factory=session_factory)
    return await dispatcher.dispatch_payment_notifications(order_id)

def schedule_payment_notifications(
    background_tasks: BackgroundTasks,
    order_id: uuid.UUID,
    session_factory: Optional[async_sessionmaker] = None
) -> None:
    """Queue notifications for delivery after the response is sent"""
    if settings.NOTIFICATION_BACKEND == "celery":
        from app.tasks.email_tasks import send_payment_notifications

        try:
            send_payment_notifications.delay(str(order_id))
        except Exception as e:
            logger.error(f"Failed to queue notifications for order {order_id}: {e}")
        return

    background_tasks.add_task(dispatch_payment_notifications, order_id, session_factory)
