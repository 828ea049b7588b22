"""Models package initialization"""

from .base import Base
from .user import User, UserRole
from .ebook import Ebook, EbookStatus
from .order import Order, OrderStatus
from .affiliate import Affiliate, CommissionEntry, CommissionStatus, AffiliatePayout
from .visit import Visit

# Export all models
__all__ = [
    "Base",
    "User",
    "UserRole",
    "Ebook",
    "EbookStatus",
    "Order",
    "OrderStatus",
    "Affiliate",
    "CommissionEntry",
    "CommissionStatus",
    "AffiliatePayout",
    "Visit",
]
