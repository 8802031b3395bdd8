"""
Storefront Reservation API — FastAPI Application

Atomic stock reservation, gateway checkout (Paystack / Flutterwave),
webhook + verify settlement, and the expired-reservation reaper.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from domain.errors import DomainError
from routes import catalog, checkout, cron, health, payments, webhooks

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: validate settings, create DB tables, start reaper. Shutdown: stop reaper."""
    # Ensure data/ directory exists for SQLite
    if settings.database_url.startswith("sqlite:///./data/"):
        os.makedirs("data", exist_ok=True)

    settings.validate_production_settings()

    from database import init_db, get_session_factory
    await init_db()
    logger.info("Database initialized")

    from services import reaper_service
    if settings.reaper_enabled:
        await reaper_service.start(get_session_factory())
        logger.info("Reservation reaper started")

    yield  # app runs here

    await reaper_service.stop()
    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="Storefront Reservation API",
    description="Stock reservation and payment reconciliation for Paystack and Flutterwave",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(catalog.router)
app.include_router(checkout.router)
app.include_router(payments.router)
app.include_router(webhooks.router)
app.include_router(cron.router)


# ── Exception Handlers ──────────────────────────────────────────────


def _error_response(status_code: int, code: str, message: str, details=None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {
                "code": code,
                "message": message,
                "details": details,
            },
        },
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never returns raw exception details to clients; the traceback is logged.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return _error_response(500, "internal_server_error", "Internal server error")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    """Malformed request bodies use the same 400 `validation` envelope as domain validation."""
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return _error_response(400, "validation", "Request validation failed", {"errors": errors})


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    if isinstance(exc, DomainError):
        return _error_response(exc.status_code, exc.code, exc.message, exc.details, exc.headers)

    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return _error_response(
        exc.status_code,
        "http_error",
        message,
        detail if not isinstance(detail, str) else None,
        getattr(exc, "headers", None),
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
