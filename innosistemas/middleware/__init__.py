"""Middleware module for InnoSistemas backend."""

from innosistemas.middleware.identity import IdentityMiddleware
from innosistemas.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "IdentityMiddleware",
    "SecurityHeadersMiddleware",
]
