"""JWT authentication middleware for web mode.

In local mode (REQUIRE_AUTH not set), all requests pass through with
user_id="local". In web mode, validates Supabase JWT tokens and extracts
user_id from the 'sub' claim.
"""

import logging

import jwt
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

import config

_logger = logging.getLogger(__name__)

LOCAL_USER_ID = config.LOCAL_USER_ID
PUBLIC_PATHS = ("/health", "/gi-analysis/status")

_SUPABASE_AUDIENCE = "authenticated"

if config.REQUIRE_AUTH and not config.SUPABASE_JWT_SECRET:
    raise ValueError("SUPABASE_JWT_SECRET must be set when REQUIRE_AUTH=true")


def _decode_token(token: str) -> dict:
    """Decode a Supabase access token (HS256, shared project secret)."""
    return jwt.decode(
        token,
        config.SUPABASE_JWT_SECRET,
        algorithms=["HS256"],
        audience=_SUPABASE_AUDIENCE,
    )


def get_user_id(request: Request) -> str:
    return getattr(request.state, "user_id", None) or LOCAL_USER_ID


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if not config.REQUIRE_AUTH:
            request.state.user_id = LOCAL_USER_ID
            return await call_next(request)

        # Skip auth for public endpoints and CORS preflight
        if request.url.path in PUBLIC_PATHS or request.method == "OPTIONS":
            request.state.user_id = None
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            return JSONResponse(
                {"detail": "Missing authorization header"}, status_code=401
            )

        token = auth_header[7:]
        try:
            payload = _decode_token(token)
        except jwt.ExpiredSignatureError:
            return JSONResponse({"detail": "Token expired"}, status_code=401)
        except jwt.InvalidTokenError:
            return JSONResponse({"detail": "Invalid token"}, status_code=401)

        request.state.user_id = payload.get("sub")
        if not request.state.user_id:
            return JSONResponse(
                {"detail": "Invalid token: missing sub"}, status_code=401
            )

        return await call_next(request)
