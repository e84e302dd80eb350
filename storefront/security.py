"""Security middleware for FastAPI: auth, CORS, rate limiting.

Middleware ordering (outermost first):
1. CORS -- handles OPTIONS preflight before auth
2. Rate limiting -- reject floods before processing
3. Auth -- verify the admin bearer token on protected paths
"""

from __future__ import annotations

import hmac
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Path prefixes that require the admin token (any method)
PROTECTED_PREFIXES = ("/admin", "/orders")

# Exact (method, path) pairs that require the admin token
PROTECTED_ROUTES = frozenset({("GET", "/webhooks/status")})

SKIP_METHODS = frozenset({"OPTIONS"})

limiter = Limiter(key_func=get_remote_address)


def extract_bearer_token(auth_header: str | None) -> str | None:
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def requires_auth(method: str, path: str) -> bool:
    if (method, path) in PROTECTED_ROUTES:
        return True
    return any(path == prefix or path.startswith(prefix + "/") for prefix in PROTECTED_PREFIXES)


class AdminAuthMiddleware(BaseHTTPMiddleware):
    """Require the admin bearer token on protected paths.

    Fails closed: with no token configured every protected request is
    rejected. Stripe webhook POSTs and /health stay public.
    """

    def __init__(self, app, token: str):
        super().__init__(app)
        self._token = token

    async def dispatch(self, request: Request, call_next):
        method = request.method
        path = request.url.path

        if method in SKIP_METHODS or not requires_auth(method, path):
            return await call_next(request)

        if not self._token:
            logger.warning("ADMIN_API_TOKEN not configured, rejecting %s %s", method, path)
            return JSONResponse({"error": "Admin access not configured"}, status_code=503)

        token = extract_bearer_token(request.headers.get("authorization"))
        if not token:
            return JSONResponse(
                {"error": "Authentication required"},
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not hmac.compare_digest(token.encode(), self._token.encode()):
            logger.info("Rejected admin token for %s %s", method, path)
            return JSONResponse(
                {"error": "Invalid or expired credentials"},
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )

        return await call_next(request)


def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors."""
    retry_after = getattr(exc, "retry_after", 60)
    return JSONResponse(
        {"error": "Rate limit exceeded", "retry_after": retry_after},
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )


def install_security_middleware(app: FastAPI, admin_token: str, cors_origins: list[str]) -> None:
    """Install all security middleware on the FastAPI app.

    Call this AFTER all routes are registered but BEFORE the app starts.
    Middleware is added in reverse order (last added = outermost = runs first).
    """
    # 3. Auth middleware (innermost -- runs last, after CORS and rate limit)
    app.add_middleware(AdminAuthMiddleware, token=admin_token)

    # 2. Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # 1. CORS middleware (outermost -- runs first, handles OPTIONS preflight)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
