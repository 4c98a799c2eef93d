"""Rate limiting for web mode using slowapi.

Limits the AI-backed endpoints to 30 requests/min per user.
Only active when REQUIRE_AUTH is set.
"""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

import config


def _get_user_key(request: Request) -> str:
    """Rate limit per authenticated user, falling back to client IP."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return user_id
    return get_remote_address(request)


limiter = Limiter(key_func=_get_user_key, enabled=config.REQUIRE_AUTH)

# Endpoints that fan out to hosted model providers
AI_RATE_LIMIT = "30/minute"


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please wait before making more requests.",
            "retry_after": exc.detail,
        },
    )
