"""
Authentication API routes
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from app.core.database import get_db
from app.core.security import get_current_user
from app.middleware.rate_limit import auth_limiter
from .schemas import (
    RegisterRequest,
    LoginRequest,
    UserResponse,
    TokenResponse
)
from .services import AuthService

router = APIRouter()

@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create a customer account and return an access token"
)
@auth_limiter
async def register(
    request: Request,
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db)
):
    """Register new user"""
    service = AuthService(db)
    return await service.register(data)

@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login",
    description="Exchange email and password for an access token"
)
@auth_limiter
async def login(
    request: Request,
    data: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login with email and password"""
    service = AuthService(db)
    return await service.login(data)

@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user"
)
async def get_me(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the authenticated user's profile"""
    service = AuthService(db)
    return await service.get_user(uuid.UUID(current_user["id"]))
