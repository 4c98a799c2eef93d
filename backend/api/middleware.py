from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

import config


SECURITY_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


class ResponseHeadersMiddleware:
    """Raw ASGI wrapper that stamps headers onto every response.

    Security headers keep health data out of shared caches and frames.
    BaseHTTPMiddleware turns exceptions from call_next() into bare 500s
    that never pass through CORSMiddleware, so CORS headers for allowed
    origins are patched in here as well when they are missing.
    """

    def __init__(self, app: ASGIApp, allowed_origins: list[str]) -> None:
        self.app = app
        self.allowed_origins = allowed_origins

    def _cors_origin(self, scope: Scope) -> str | None:
        origin = Headers(scope=scope).get("origin")
        if origin and ("*" in self.allowed_origins or origin in self.allowed_origins):
            return origin
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = self._cors_origin(scope)

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in SECURITY_HEADERS.items():
                    headers[name] = value
                if origin and "access-control-allow-origin" not in headers:
                    headers["Access-Control-Allow-Origin"] = origin
                    headers["Access-Control-Allow-Credentials"] = "true"
            await send(message)

        await self.app(scope, receive, send_with_headers)


def parse_allowed_origins(raw: str) -> list[str]:
    """Comma-separated origins; empty means any origin (local mode)."""
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


def add_cors_middleware(app):
    origins = parse_allowed_origins(config.ALLOWED_ORIGINS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Outermost, so error responses from inner middleware are covered too
    app.add_middleware(ResponseHeadersMiddleware, allowed_origins=origins)
