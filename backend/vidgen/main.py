"""VidGen API: app factory, lifespan and error mapping."""

import signal
import uuid
from contextlib import asynccontextmanager

# structlog caches its processor chain on first use, so logging is set up
# before any vidgen module creates a logger.
from vidgen.core.config import get_settings
from vidgen.core.logging import configure_structlog

_boot_settings = get_settings()
configure_structlog(
    log_level="DEBUG" if _boot_settings.debug else _boot_settings.log_level,
    json_logs=not _boot_settings.debug,
)

import structlog  # noqa: E402
from fastapi import FastAPI, HTTPException, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from vidgen.api.routes import api_router  # noqa: E402
from vidgen.core.exceptions import (  # noqa: E402
    DailyLimitReachedError,
    DuplicateKeyError,
    EntitlementError,
    KeyNotFoundError,
    PoolExhaustedError,
    ProviderCallError,
    UserNotFoundError,
)
from vidgen.db import close_db, close_redis, init_db, init_redis  # noqa: E402
from vidgen.db.seed import seed_rotation_settings  # noqa: E402
from vidgen.middleware.correlation import get_correlation_id, setup_correlation_middleware  # noqa: E402

logger = structlog.get_logger(__name__)

POOL_UNAVAILABLE_DETAIL = "Service temporarily unavailable. Please try again later."
PROVIDER_FAILED_DETAIL = "Generation failed. Please try again."


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.shutting_down = False

    def on_sigterm(signum, frame):
        # /health answers 503 from here on; in-flight SSE streams keep running
        app.state.shutting_down = True
        logger.info("sigterm_received")

    signal.signal(signal.SIGTERM, on_sigterm)

    settings = get_settings()
    logger.info(
        "startup",
        app_name=settings.app_name,
        key_failover_attempts=settings.key_failover_attempts,
        provider_error_threshold=settings.provider_error_threshold,
    )
    await init_db()
    await init_redis()
    await seed_rotation_settings()
    logger.info("startup_complete")

    yield

    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


def _error_response(request: Request, status_code: int, detail, event: str, level: str = "warning", **context):
    """Log under a fresh debug_id and return ``{"detail", "debug_id"}``."""
    debug_id = str(uuid.uuid4())
    getattr(logger, level)(
        event,
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        method=request.method,
        path=request.url.path,
        user_id=getattr(request.state, "user_id", None),
        **context,
    )
    return JSONResponse(status_code=status_code, content={"detail": detail, "debug_id": debug_id})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail, "http_exception")


async def entitlement_exception_handler(request: Request, exc: EntitlementError) -> JSONResponse:
    """Entitlement denials: 429 for the daily limit, 403 otherwise."""
    status_code = 429 if isinstance(exc, DailyLimitReachedError) else 403
    return _error_response(
        request, status_code, exc.reason, "entitlement_denied", error_type=type(exc).__name__
    )


async def pool_exhausted_handler(request: Request, exc: PoolExhaustedError) -> JSONResponse:
    # Provider name is logged only
    return _error_response(request, 503, POOL_UNAVAILABLE_DETAIL, "pool_exhausted_response", provider=exc.provider)


async def provider_call_handler(request: Request, exc: ProviderCallError) -> JSONResponse:
    return _error_response(
        request, 502, PROVIDER_FAILED_DETAIL, "provider_call_failed", error=str(exc), provider_status=exc.status_code
    )


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError) -> JSONResponse:
    return _error_response(request, 409, str(exc), "duplicate_key", provider=exc.provider)


async def not_found_handler(request: Request, exc: KeyNotFoundError | UserNotFoundError) -> JSONResponse:
    return _error_response(request, 404, str(exc), "resource_not_found", error_type=type(exc).__name__)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unmapped: full traceback in the logs, a bare 500 to the client."""
    return _error_response(
        request,
        500,
        "Internal server error",
        "unhandled_exception",
        level="error",
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )


def register_exception_handlers(app: FastAPI) -> None:
    handlers = {
        HTTPException: http_exception_handler,
        EntitlementError: entitlement_exception_handler,
        PoolExhaustedError: pool_exhausted_handler,
        ProviderCallError: provider_call_handler,
        DuplicateKeyError: duplicate_key_handler,
        KeyNotFoundError: not_found_handler,
        UserNotFoundError: not_found_handler,
        Exception: generic_exception_handler,
    }
    for exc_class, handler in handlers.items():
        app.add_exception_handler(exc_class, handler)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Plan-gated video and voice generation with pooled provider keys",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    # Added last so it wraps CORS and sees every request first
    setup_correlation_middleware(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("vidgen.main:app", host="0.0.0.0", port=8000, reload=_boot_settings.debug)
