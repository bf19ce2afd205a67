"""FastAPI dependencies for database, authentication, and shared services."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional
import uuid

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
import jwt
from jwt import PyJWTError

from .database import get_async_session
from .config import settings
from .exceptions import AuthenticationError, AuthorizationError
from ..models.user import User, UserRole


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request or WebSocket connection."""

    user_id: uuid.UUID
    role: UserRole
    email: str
    display_name: str

    @property
    def is_owner(self) -> bool:
        return self.role == UserRole.OWNER


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


def create_access_token(user_id: uuid.UUID, expires_in: timedelta = timedelta(hours=12)) -> str:
    """Issue an HS256 bearer token for a user (seed data and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


def decode_access_token(token: str) -> uuid.UUID:
    """
    Verify a bearer token and return the user id it names.

    Raises:
        AuthenticationError: If the token is invalid, expired or malformed
    """
    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")

    subject = payload.get("sub")
    if subject is None:
        raise AuthenticationError("Invalid token payload")

    try:
        return uuid.UUID(str(subject))
    except ValueError:
        raise AuthenticationError("Invalid token subject")


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")
    return token


async def load_principal(db: AsyncSession, user_id: uuid.UUID) -> Principal:
    """Resolve a token subject to an active user."""
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return Principal(
        user_id=user.id,
        role=user.role,
        email=user.email,
        display_name=user.display_name or user.full_name,
    )


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token
        db: Database session

    Returns:
        Principal: The authenticated user

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    token = extract_bearer_token(authorization)
    user_id = decode_access_token(token)
    return await load_principal(db, user_id)


async def require_owner(
    principal: Principal = Depends(get_current_user),
) -> Principal:
    """Authorization dependency for operator-only endpoints."""
    if not principal.is_owner:
        raise AuthorizationError(required_role=UserRole.OWNER.value)
    return principal


def get_realtime_hub(request: Request):
    """Return the application's real-time room registry."""
    return request.app.state.realtime_hub


def get_email_dispatcher(request: Request):
    """Return the application's email dispatcher."""
    return request.app.state.email_dispatcher
