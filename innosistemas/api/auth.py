"""Authentication API endpoints."""

import logging
import time
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from innosistemas.api.deps import (
    get_auth_service,
    get_bearer_token,
    get_current_user,
    unauthenticated,
)
from innosistemas.core import settings
from innosistemas.models.user import User
from innosistemas.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    ProfileResponse,
    RefreshRequest,
    TokenResponse,
)
from innosistemas.services.auth import (
    AccountDisabledError,
    AuthService,
    InvalidCredentialsError,
    InvalidTokenError,
)
from innosistemas.services.tokens import TokenPair

logger = logging.getLogger(__name__)

# Rate limiting for login attempts
_login_attempts: dict[str, list[float]] = defaultdict(list)


def _check_login_rate_limit(client_ip: str) -> None:
    """Check if a client IP has exceeded the login attempt rate limit."""
    now = time.monotonic()
    window = settings.login_rate_limit_window_seconds
    recent = [t for t in _login_attempts.get(client_ip, []) if now - t < window]
    if not recent:
        _login_attempts.pop(client_ip, None)
        return
    _login_attempts[client_ip] = recent
    if len(recent) >= settings.login_rate_limit_attempts:
        logger.warning("Login rate limit exceeded for %s", client_ip)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again later.",
        )


def _record_login_attempt(client_ip: str) -> None:
    """Record a failed login attempt for rate limiting."""
    _login_attempts[client_ip].append(time.monotonic())


def _token_response(tokens: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    http_request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Authenticate and get JWT tokens.

    Rate limited per client IP.
    """
    client_ip = http_request.client.host if http_request.client else "unknown"
    _check_login_rate_limit(client_ip)

    try:
        tokens = await auth_service.login(email=request.email, password=request.password)
    except InvalidCredentialsError as e:
        _record_login_attempt(client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        ) from e
    except AccountDisabledError as e:
        _record_login_attempt(client_ip)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        ) from e
    return _token_response(tokens)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_tokens(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Exchange a refresh token for a new token pair.

    The presented refresh token is revoked (rotation on use).
    """
    try:
        tokens = await auth_service.refresh(request.refresh_token)
    except InvalidTokenError as e:
        logger.info(f"Refresh rejected: {e.failure}")
        raise unauthenticated() from e
    except AccountDisabledError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        ) from e
    return _token_response(tokens)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    body: LogoutRequest | None = None,
    access_token: str = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> LogoutResponse:
    """Log out the current session.

    Revokes the access token from the Authorization header and, if given,
    the refresh token from the body.
    """
    refresh_token = body.refresh_token if body else None
    result = await auth_service.logout(access_token, refresh_token)
    return LogoutResponse(
        message="Logged out successfully",
        access_token_revoked=result.access_token_revoked,
        refresh_token_revoked=result.refresh_token_revoked,
    )


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(current_user: User = Depends(get_current_user)) -> ProfileResponse:
    """Get the current user's profile."""
    return ProfileResponse.model_validate(current_user)
