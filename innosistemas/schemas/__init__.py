# InnoSistemas Pydantic Schemas
from innosistemas.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    ProfileResponse,
    RefreshRequest,
    TokenResponse,
)
from innosistemas.schemas.user import UserRegistrationRequest, UserResponse

__all__ = [
    "LoginRequest",
    "LogoutRequest",
    "LogoutResponse",
    "ProfileResponse",
    "RefreshRequest",
    "TokenResponse",
    "UserRegistrationRequest",
    "UserResponse",
]
