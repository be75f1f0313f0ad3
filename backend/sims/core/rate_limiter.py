"""
Rate Limiting for the SIMS API
==============================
slowapi limiter keyed by signed-in user, falling back to client IP.
Storage defaults to process memory (RATE_LIMIT_STORAGE_URI).

Auth endpoints carry tighter limits:
- /auth/login: 5 req/min (brute force protection)
- /auth/register: 3 req/min
- /auth/reset-password/request: 3 req/min
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from sims.core.config import settings
from sims.core.logging_config import logger


def get_user_identifier(request: Request) -> str:
    """
    Rate limit key: signed-in user id when the route guard resolved one,
    otherwise the client address.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute"],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """JSON 429 with a Retry-After hint"""
    logger.warning(f"[RateLimit] Exceeded for {get_user_identifier(request)}: {exc.detail}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please slow down.",
            "detail": str(exc.detail),
        },
        headers={"Retry-After": "60"},
    )


def auth_rate_limit():
    """Rate limit for sign-in (5/min)"""
    return limiter.limit("5/minute")


def strict_rate_limit():
    """Very strict rate limit for registration and recovery (3/min)"""
    return limiter.limit("3/minute")
