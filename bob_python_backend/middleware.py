"""
HTTP middleware: CORS allow-list and per-client rate limiting.

CORS answers every preflight itself and stamps the allow-list headers on
every response. Requests from an origin outside the allow-list get the
first allowed origin echoed back, which browsers then reject.

Rate limiting is a fixed window per client IP (300 requests / 15 minutes
by default). Health checks and preflights are never counted.
"""

import logging
import math
from typing import Callable, Optional, Sequence, Set

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from bob_python_backend.config import ALLOWED_ORIGINS
from bob_python_backend.services.rate_limiter import RateLimiter

logger = logging.getLogger("bob_backend")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Paths that are never rate limited (exact match after stripping trailing slash)
HEALTH_PATHS: Set[str] = {"/", "/health"}

ALLOW_METHODS = "GET, POST, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"
PREFLIGHT_MAX_AGE = 86400


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _normalize_path(path: str) -> str:
    """Strip trailing slash for consistent matching."""
    return path.rstrip("/") if path != "/" else path


def _is_health(path: str) -> bool:
    return _normalize_path(path) in HEALTH_PATHS


def _is_cors_preflight(request: Request) -> bool:
    return request.method == "OPTIONS"


def client_key(request: Request) -> str:
    """Client IP, preferring the first hop of X-Forwarded-For when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def cors_headers(origin: Optional[str], allowed_origins: Sequence[str]) -> dict:
    allow_origin = origin if origin and origin in allowed_origins else (allowed_origins[0] if allowed_origins else "")
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


# ---------------------------------------------------------------------------
# CORS Middleware
# ---------------------------------------------------------------------------

class CorsMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, allowed_origins: Optional[Sequence[str]] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.allowed_origins = list(allowed_origins if allowed_origins is not None else ALLOWED_ORIGINS)

    async def dispatch(self, request: Request, call_next: Callable):
        origin = request.headers.get("origin")
        headers = cors_headers(origin, self.allowed_origins)

        if origin and origin not in self.allowed_origins:
            logger.warning("[CORS] Origin %s not in allow-list", origin)

        if _is_cors_preflight(request):
            headers["Access-Control-Max-Age"] = str(PREFLIGHT_MAX_AGE)
            return Response(status_code=status.HTTP_204_NO_CONTENT, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response


# ---------------------------------------------------------------------------
# Rate Limiting Middleware
# ---------------------------------------------------------------------------

class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window per-IP rate limiting.

    The limiter is shared process state; with several workers each worker
    counts separately.
    """

    def __init__(self, app: ASGIApp, limiter: Optional[RateLimiter] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.limiter = limiter if limiter is not None else RateLimiter()

    def _limit_headers(self, key: str) -> dict:
        reset_at = self.limiter.reset_at(key)
        headers = {
            "X-RateLimit-Limit": str(self.limiter.limit),
            "X-RateLimit-Remaining": str(self.limiter.remaining(key)),
        }
        if reset_at is not None:
            headers["X-RateLimit-Reset"] = str(math.ceil(reset_at))
        return headers

    async def dispatch(self, request: Request, call_next: Callable):
        path = _normalize_path(request.url.path)

        if _is_health(path) or _is_cors_preflight(request):
            return await call_next(request)

        key = client_key(request)
        if self.limiter.is_rate_limited(key):
            retry_after = self.limiter.retry_after(key)
            logger.warning(
                "[RATE LIMIT] %s exceeded %d requests per %ss on %s %s",
                key, self.limiter.limit, self.limiter.window_seconds, request.method, path,
            )
            headers = self._limit_headers(key)
            headers["Retry-After"] = str(retry_after)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Too many requests",
                    "details": f"Rate limit exceeded. Try again in {retry_after} seconds.",
                },
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(self._limit_headers(key))
        return response


# ---------------------------------------------------------------------------
# Wiring helper
# ---------------------------------------------------------------------------

def configure_middleware(app, limiter: Optional[RateLimiter] = None, allowed_origins: Optional[Sequence[str]] = None):
    """
    Wire CORS and rate limiting onto the FastAPI app.

    Middleware executes in reverse registration order (last added = outermost).
    CORS is outermost so that 429 responses also carry CORS headers.
    """
    limiter = limiter if limiter is not None else RateLimiter()
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(CorsMiddleware, allowed_origins=allowed_origins)

    origins = allowed_origins if allowed_origins is not None else ALLOWED_ORIGINS
    logger.info("[SECURITY] Middleware configured:")
    logger.info("[SECURITY]   CORS origins: %s", ", ".join(origins))
    logger.info("[SECURITY]   Rate limit: %d per %ss", limiter.limit, limiter.window_seconds)
    return limiter
