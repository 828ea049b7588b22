"""
Helper utilities
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone
from typing import Optional

def utcnow() -> datetime:
    """Timezone aware current UTC time"""
    return datetime.now(timezone.utc)

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes

    SQLite hands back naive values for timezone aware columns, so every
    comparison against ``utcnow()`` goes through here first.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def calculate_commission(amount: int, rate: Decimal) -> int:
    """
    Commission in minor currency units

    Args:
        amount: Order amount in minor units (paise for INR)
        rate: Commission rate as a fraction in [0, 1]

    Returns:
        Commission rounded half-up to a whole minor unit
    """
    commission = Decimal(amount) * Decimal(str(rate))
    return int(commission.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def format_currency(amount: int, currency: str = "INR") -> str:
    """
    Format an amount held in minor units

    Args:
        amount: Amount in minor units
        currency: Currency code

    Returns:
        Formatted currency string
    """
    major = Decimal(amount) / Decimal(100)

    if currency == "INR":
        # Indian numbering: last three digits, then groups of two
        integer_part, decimal_part = f"{major:.2f}".split(".")
        if len(integer_part) > 3:
            result = integer_part[-3:]
            integer_part = integer_part[:-3]
            while integer_part:
                result = integer_part[-2:] + "," + result
                integer_part = integer_part[:-2]
            return f"₹{result}.{decimal_part}"
        return f"₹{integer_part}.{decimal_part}"

    return f"{currency} {major:.2f}"
