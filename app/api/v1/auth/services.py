"""
Authentication service layer
Handles business logic for authentication
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
import uuid
import logging

from app.models import User, UserRole
from app.core.security import SecurityUtils
from app.core.config import settings
from app.core.exceptions import (
    NotFoundException,
    UnauthorizedException,
    DuplicateResourceException
)
from .schemas import RegisterRequest, LoginRequest, TokenResponse, UserResponse

logger = logging.getLogger(__name__)

class AuthService:
    """Authentication service"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        role: UserRole = UserRole.CUSTOMER
    ) -> User:
        """
        Create a user with a hashed password

        Raises:
            DuplicateResourceException: If the email is already registered
        """
        email = email.lower()
        if await self.get_user_by_email(email):
            raise DuplicateResourceException("User", "email", email)

        user = User(
            email=email,
            name=name,
            role=role,
            password_hash=SecurityUtils.hash_password(password),
            is_active=True,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateResourceException("User", "email", email)
        await self.db.commit()

        logger.info(f"User {user.id} registered with role {role.value}")
        return user

    async def register(self, request: RegisterRequest) -> TokenResponse:
        """
        Register new customer account

        Args:
            request: Registration request data

        Returns:
            Token for the new user
        """
        user = await self.create_user(request.email, request.password, request.name)
        return self.create_token_response(user)

    async def login(self, request: LoginRequest) -> TokenResponse:
        """
        Authenticate with email and password

        Raises:
            UnauthorizedException: If the credentials don't match
        """
        user = await self.get_user_by_email(request.email)
        if (
            not user
            or not user.is_active
            or not user.password_hash
            or not SecurityUtils.verify_password(request.password, user.password_hash)
        ):
            logger.info(f"Failed login for {request.email}")
            raise UnauthorizedException("Invalid email or password", "INVALID_CREDENTIALS")

        return self.create_token_response(user)

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundException("User not found", "USER_NOT_FOUND")
        return user

    def create_token_response(self, user: User) -> TokenResponse:
        """
        Create token response for user

        Args:
            user: User object

        Returns:
            TokenResponse with access token
        """
        token_data = {
            "sub": str(user.id),
            "role": user.role.value,
            "email": user.email,
            "name": user.name,
            "affiliate_id": str(user.affiliate_id) if user.affiliate_id else None
        }

        return TokenResponse(
            access_token=SecurityUtils.create_access_token(token_data),
            token_type="bearer",
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=UserResponse.model_validate(user)
        )
