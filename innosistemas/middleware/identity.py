"""Request identity middleware using JWT.

Every request that carries an ``Authorization: Bearer <token>`` header is
validated against the TokenService. The result is stored on
``request.state.identity``: an Identity for a valid access token, None
otherwise. The middleware never rejects a request for a bad token; endpoints
that need a caller depend on ``require_identity``.

The one exception is an unreachable revocation store, which yields a 503:
the request can be neither trusted nor safely treated as anonymous.
"""

import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from innosistemas.services.revocation_store import StoreUnavailableError
from innosistemas.services.token_validator import TokenValidator

logger = logging.getLogger(__name__)

# Paths that never resolve an identity
EXCLUDED_PATHS = [
    "/auth/login",
    "/auth/refresh",
    "/health",
]


def is_excluded(path: str) -> bool:
    """Exact or segment-boundary match against EXCLUDED_PATHS."""
    return any(path == excluded or path.startswith(excluded + "/") for excluded in EXCLUDED_PATHS)


class IdentityMiddleware(BaseHTTPMiddleware):
    """Attach the authenticated Identity (or None) to each request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.identity = None

        # CORS preflight requests are handled by CORSMiddleware
        if request.method == "OPTIONS" or is_excluded(request.url.path):
            return await call_next(request)

        header = request.headers.get("Authorization")
        if header is None:
            return await call_next(request)

        validator: TokenValidator = request.app.state.token_validator
        try:
            request.state.identity = await validator.authenticate(header)
        except StoreUnavailableError:
            logger.error(f"Revocation store unavailable for: {request.method} {request.url.path}")
            return JSONResponse(
                status_code=503,
                content={"detail": "Authentication temporarily unavailable"},
            )

        if request.state.identity is None:
            logger.info(f"Invalid session for: {request.method} {request.url.path}")

        return await call_next(request)
