"""
deckguard/main.py — FastAPI application entry point
Includes: lifespan management (logging, schema creation), CORS, coarse
          rate limiting, security headers, payload error mapping, ping.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from deckguard.clients.database import init_db
from deckguard.config import get_settings
from deckguard.core.logging import setup_logging
from deckguard.core.rate_limiter import limiter
from deckguard.models import RejectReason
from deckguard.routers import admin, api

settings = get_settings()

VERSION = "1.0.0"


# ──────────────────────────────────────────────────────────────────────────────
# Application Lifespan
# ──────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan: startup → yield → shutdown.
    Startup: initialize logging, create tables, warn on missing admin credentials.
    """
    setup_logging(settings.log_level)
    logger.info("DeckGuard starting up...")

    init_db()

    if not settings.admin_api_key and not (settings.admin_user and settings.admin_pass):
        logger.warning("No admin credentials configured; moderation endpoints will refuse all requests.")

    logger.info("Startup complete.")
    yield
    logger.info("Shutting down DeckGuard.")


# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="DeckGuard",
    description=(
        "Anti-abuse guard for community submissions, reports and waitlist "
        "signups, plus a fairness-aware card deck scheduler."
    ),
    version=VERSION,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url=None,
    lifespan=lifespan,
)

# ── Rate limiting (slowapi) ────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(
    RateLimitExceeded,
    lambda req, exc: JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded. Slow down.", "retryable": True},
    ),
)
app.add_middleware(SlowAPIMiddleware)


# ── Malformed bodies share the guard's invalid_payload shape ─────────────────
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    reason = RejectReason.INVALID_PAYLOAD
    return JSONResponse(
        status_code=reason.status_code,
        content={"error": "Invalid request payload.", "reason": reason.value, "retryable": False},
    )


# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else [],
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ── Security headers middleware ───────────────────────────────────────────────
@app.middleware("http")
async def add_security_headers(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
    return response


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(api.router, prefix="/api", tags=["api"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])


# ── Ping keep-alive endpoint ──────────────────────────────────────────────────
@app.get("/api/ping", tags=["health"])
async def ping():
    """Liveness only. Does NOT touch the database."""
    return {"status": "ok", "version": VERSION}
