"""
Rate limiting configuration using slowapi.

Uses Redis as the backend so limits are shared across workers.
Provides pre-configured limits for the operational endpoints.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.config import settings


def _get_client_key(request: Request) -> str:
    """
    Rate-limit key: the caller's X-Forwarded-For origin when behind the
    proxy, otherwise the client IP.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_client_key,
    storage_uri=settings.redis_url,
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)

# Pre-defined rate limit strings for use in route decorators:
#   @limiter.limit(RATE_ENQUEUE)
RATE_ENQUEUE = "30/minute"       # new attempts fan out to fetches and LLM calls
RATE_ADMIN = "20/minute"         # mark-failed, retry, cleanup
