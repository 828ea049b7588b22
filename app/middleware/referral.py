"""Referral attribution tracking"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from typing import Optional
import re
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

REFERRAL_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,50}$")

def clean_referral_code(value: Optional[str]) -> Optional[str]:
    """Trimmed code if it looks like a referral code, else None"""
    if not value:
        return None
    value = value.strip()
    if not REFERRAL_CODE_PATTERN.match(value):
        return None
    return value

class ReferralTrackingMiddleware(BaseHTTPMiddleware):
    """
    Remember the affiliate code a visitor arrived with

    Any request carrying ``?aff=CODE`` stores the code in a long-lived
    cookie. A later link overwrites an earlier one (last touch wins).
    """

    async def dispatch(self, request: Request, call_next):
        code = clean_referral_code(request.query_params.get(settings.REFERRAL_PARAM))
        if code:
            # Visible to the handler of this same request
            request.state.referral_code = code

        response: Response = await call_next(request)

        if code:
            response.set_cookie(
                key=settings.REFERRAL_COOKIE_NAME,
                value=code,
                max_age=settings.REFERRAL_COOKIE_MAX_AGE_DAYS * 24 * 60 * 60,
                path="/",
                samesite="lax",
                httponly=True,
                secure=settings.ENVIRONMENT == "production"
            )
            logger.debug(f"Referral code {code} recorded for {request.url.path}")

        return response

def resolve_referral_code(explicit: Optional[str], request: Request) -> Optional[str]:
    """
    Pick the referral code for an order

    An explicit code from the request body wins, then a code on this
    request's URL, then the tracking cookie.
    """
    if explicit and explicit.strip():
        return explicit.strip()

    from_url = getattr(request.state, "referral_code", None)
    if from_url:
        return from_url

    return clean_referral_code(request.cookies.get(settings.REFERRAL_COOKIE_NAME))
