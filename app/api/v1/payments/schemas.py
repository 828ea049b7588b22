"""
Payment schemas for request/response validation
"""

from pydantic import Field
from typing import Optional

from app.schemas.base import BaseSchema

class PaymentKeyResponse(BaseSchema):
    """Public key for the checkout widget"""
    key_id: str
    currency: str

class WebhookResponse(BaseSchema):
    """Acknowledgement returned to the gateway"""
    status: str = Field(..., description="processed or ignored")
    event: Optional[str] = None
    outcome: Optional[str] = None
    order_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "status": "processed",
                "event": "payment.captured",
                "outcome": "paid_commission_credited",
                "orderId": "123e4567-e89b-12d3-a456-426614174000"
            }
        }
