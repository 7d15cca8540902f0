"""Shared FastAPI dependencies."""

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from innosistemas.core import get_db
from innosistemas.models.user import User
from innosistemas.services.auth import AuthService
from innosistemas.services.token_validator import (
    AuthorizationHeaderError,
    Identity,
    TokenValidator,
)
from innosistemas.services.tokens import TokenService
from innosistemas.services.user import UserService

INVALID_SESSION_DETAIL = "Invalid or expired session"


def unauthenticated(detail: str = INVALID_SESSION_DETAIL) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def get_auth_service(
    token_service: TokenService = Depends(get_token_service),
    user_service: UserService = Depends(get_user_service),
) -> AuthService:
    return AuthService(token_service, user_service)


def get_identity(request: Request) -> Identity | None:
    """The caller resolved by IdentityMiddleware, or None if unauthenticated."""
    return getattr(request.state, "identity", None)


def require_identity(identity: Identity | None = Depends(get_identity)) -> Identity:
    if identity is None:
        raise unauthenticated()
    return identity


def get_bearer_token(request: Request, _: Identity = Depends(require_identity)) -> str:
    """Raw access token of an authenticated request."""
    try:
        return TokenValidator.extract(request.headers.get("Authorization"))
    except AuthorizationHeaderError as e:
        raise unauthenticated() from e


async def get_current_user(
    identity: Identity = Depends(require_identity),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """Load the authenticated user. Deleted or disabled users are rejected."""
    user = await user_service.find_by_subject(identity.subject)
    if user is None or not user.enabled:
        raise unauthenticated()
    return user
