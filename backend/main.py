import logging
import os
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import config
from api.auth import AuthMiddleware
from api.middleware import add_cors_middleware
from api.routes import router
from server import resolve_port, start_server
from storage import get_db

_logger = logging.getLogger(__name__)

# Identifier patterns scrubbed from error reports before they leave the process
_PHI_PATTERNS = [
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),                    # SSN
    re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b"),        # dates
    re.compile(r"\b[A-Z]{1,2}\d{6,10}\b"),                    # MRN
    re.compile(r"\b\d{10}\b"),                                 # phone
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),  # email
    re.compile(r"(?i)(?:patient|name)\s*[:=]\s*[^\n,;]{2,40}"),  # labeled patient name
    re.compile(r"(?i)(?:symptom|journal|content)\s*[:=]\s*[^\n]{2,200}"),  # free-text health data
]


def scrub_phi(text: str) -> str:
    for pattern in _PHI_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


def before_send(event, hint):
    """Sentry hook: redact identifiers from exception values and breadcrumbs."""
    if "exception" in event:
        for exc_info in event["exception"].get("values", []):
            if exc_info.get("value"):
                exc_info["value"] = scrub_phi(exc_info["value"])
    for bc in event.get("breadcrumbs", {}).get("values", []):
        if bc.get("message"):
            bc["message"] = scrub_phi(bc["message"])
    return event


def _init_sentry() -> None:
    if not config.SENTRY_DSN:
        return
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        environment=os.getenv("SENTRY_ENVIRONMENT", "development"),
        integrations=[FastApiIntegration(), StarletteIntegration()],
        before_send=before_send,
        send_default_pii=False,
    )


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the SQLite database (creating the schema) before serving."""
    get_db()
    configured = [
        p for p in config.PROVIDER_VENDORS if config.is_provider_configured(p)
    ]
    _logger.info("Providers configured: %s", ", ".join(configured) or "none")
    yield


def create_app() -> FastAPI:
    _configure_logging()
    _init_sentry()
    app = FastAPI(title="Sherlock Health API", version="1.0.0", lifespan=lifespan)
    # Middleware order (inner → outer): Auth → CORS → response headers
    app.add_middleware(AuthMiddleware)
    if config.REQUIRE_AUTH:
        from slowapi.errors import RateLimitExceeded

        from api.rate_limit import limiter, rate_limit_exceeded_handler

        app.state.limiter = limiter
        app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    add_cors_middleware(app)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error."},
        )

    app.include_router(router)
    return app


if __name__ == "__main__":
    app = create_app()
    start_server(app, resolve_port())
