"""Email background tasks"""

from celery import Task
from celery.utils.log import get_task_logger
from typing import Dict, List, Optional
import asyncio
import uuid

from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.database import build_engine, build_session_factory
from app.services.notification_dispatcher import NotificationDispatcher, ALL_CHANNELS

logger = get_task_logger(__name__)

class EmailTask(Task):
    """Base email task with retry logic"""
    max_retries = 3
    default_retry_delay = 60
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

async def _dispatch(order_id: uuid.UUID, channels: List[str]) -> Dict[str, bool]:
    # The worker runs each task on a fresh event loop, so it gets its own engine
    engine = build_engine(settings.database_url_async)
    try:
        dispatcher = NotificationDispatcher(session_factory=build_session_factory(engine))
        return await dispatcher.dispatch_payment_notifications(order_id, channels)
    finally:
        await engine.dispose()

@celery_app.task(bind=True, base=EmailTask, name="send_payment_notifications")
def send_payment_notifications(self, order_id: str, channels: Optional[List[str]] = None):
    """Send the post-payment emails, retrying only the channels that failed"""
    channels = channels or list(ALL_CHANNELS)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        results = loop.run_until_complete(_dispatch(uuid.UUID(order_id), channels))
    finally:
        loop.close()

    failed = [channel for channel, ok in results.items() if not ok]
    if failed:
        logger.warning(f"Retrying {failed} for order {order_id}")
        raise self.retry(kwargs={"order_id": order_id, "channels": failed})

    logger.info(f"Payment notifications sent for order {order_id}")
    return {"success": True, "channels": list(results)}
