"""
Payment webhook payload helpers
"""

from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

class WebhookHandler:
    """Parse gateway webhooks and route events"""

    # event name -> PaymentService method
    EVENT_HANDLERS = {
        "payment.captured": "handle_payment_captured",
        "order.paid": "handle_payment_captured",
        "payment.failed": "handle_payment_failed",
    }

    @staticmethod
    def validate_webhook_data(data: Dict[str, Any]) -> bool:
        """
        Validate webhook data structure

        Args:
            data: Webhook payload

        Returns:
            True if valid
        """
        required_fields = ["event", "payload"]
        return isinstance(data, dict) and all(field in data for field in required_fields)

    @classmethod
    def get_event_handler(cls, event: str) -> Optional[str]:
        """
        Get handler name for specific event

        Args:
            event: Event name

        Returns:
            Name of the PaymentService coroutine, None for ignored events
        """
        return cls.EVENT_HANDLERS.get(event)

    @staticmethod
    def payment_entity(data: Dict[str, Any]) -> Dict[str, Any]:
        """The payment object carried by payment.* and order.paid events"""
        return data.get("payload", {}).get("payment", {}).get("entity", {}) or {}

    @staticmethod
    def order_entity(data: Dict[str, Any]) -> Dict[str, Any]:
        return data.get("payload", {}).get("order", {}).get("entity", {}) or {}

    @classmethod
    def gateway_order_id(cls, data: Dict[str, Any]) -> Optional[str]:
        payment = cls.payment_entity(data)
        return payment.get("order_id") or cls.order_entity(data).get("id")

    @classmethod
    def failure_reason(cls, data: Dict[str, Any]) -> str:
        payment = cls.payment_entity(data)
        return (
            payment.get("error_description")
            or payment.get("error_reason")
            or payment.get("error_code")
            or "Payment failed"
        )
