"""
Custom exception classes and error handlers
Provides consistent error responses across the application
"""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Any, Dict, Optional
import logging

from .config import settings

logger = logging.getLogger(__name__)

class AppException(HTTPException):
    """Base exception class for the storefront application"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

class BadRequestException(AppException):
    """400 Bad Request"""

    def __init__(self, detail: str, error_code: str = "BAD_REQUEST"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code
        )

class UnauthorizedException(AppException):
    """401 Unauthorized"""

    def __init__(self, detail: str = "Unauthorized", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code=error_code,
            headers={"WWW-Authenticate": "Bearer"}
        )

class ForbiddenException(AppException):
    """403 Forbidden"""

    def __init__(self, detail: str = "Forbidden", error_code: str = "FORBIDDEN"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code
        )

class NotFoundException(AppException):
    """404 Not Found"""

    def __init__(self, detail: str = "Not found", error_code: str = "NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code=error_code
        )

class ConflictException(AppException):
    """409 Conflict"""

    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )

class ValidationException(AppException):
    """422 Unprocessable Entity"""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )

class GatewayException(AppException):
    """502 Bad Gateway - payment provider failure"""

    def __init__(
        self,
        detail: str = "Payment gateway unavailable",
        error_code: str = "GATEWAY_UNAVAILABLE"
    ):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
            error_code=error_code
        )

# Business logic exceptions
class SignatureMismatchException(BadRequestException):
    """Gateway callback failed signature verification"""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            detail=detail or (
                "Payment signature verification failed. If you were charged, "
                f"contact {settings.SUPPORT_EMAIL} with your order id."
            ),
            error_code="INVALID_SIGNATURE"
        )

class PaymentMismatchException(BadRequestException):
    """Gateway payment does not match the ledger order"""

    def __init__(self, detail: str):
        super().__init__(
            detail=detail,
            error_code="PAYMENT_MISMATCH"
        )

class AlreadyProcessedException(ConflictException):
    """Order already left the created state through another payment or action"""

    def __init__(self, detail: str = "Order has already been processed"):
        super().__init__(
            detail=detail,
            error_code="ALREADY_PROCESSED"
        )

class ExpiredException(AppException):
    """410 Gone - order can no longer be paid"""

    def __init__(self, detail: str = "Order has expired"):
        super().__init__(
            status_code=status.HTTP_410_GONE,
            detail=detail,
            error_code="ORDER_EXPIRED"
        )

class InvalidStatusTransitionException(ConflictException):
    """Requested status change is not allowed"""

    def __init__(self, current: str, requested: str):
        super().__init__(
            detail=f"Cannot move order from {current} to {requested}",
            error_code="INVALID_STATUS_TRANSITION"
        )

class DuplicateResourceException(ConflictException):
    """Resource already exists"""

    def __init__(self, resource: str, field: str, value: str):
        super().__init__(
            detail=f"{resource} with {field} '{value}' already exists",
            error_code="DUPLICATE_RESOURCE"
        )

def _error_body(request: Request, code: str, message: Any) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "request_id": getattr(request.state, "request_id", None)
        }
    }

async def app_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors in the common error envelope"""
    code = getattr(exc, "error_code", None) or "HTTP_ERROR"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, code, exc.detail),
        headers=exc.headers
    )

async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Render request validation errors with a machine readable code"""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": error.get("msg")
        }
        for error in exc.errors()
    ]
    body = _error_body(request, "VALIDATION_ERROR", "Request validation failed")
    body["error"]["details"] = errors
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=body)

async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected errors and hide internals from the client"""
    logger.exception(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}"
    )
    detail = str(exc) if settings.DEBUG else "An unexpected error occurred"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "INTERNAL_ERROR", detail)
    )

def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error envelope handlers to the application"""
    app.add_exception_handler(StarletteHTTPException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
