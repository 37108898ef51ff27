"""FastAPI application entry point.

Reward Ledger API - token rewards, daily check-ins and wallet transfers.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from app.api import checkin, rewards, wallet
from app.config import get_settings
from app.logging_config import bind_context, clear_context, configure_logging, get_logger
from app.middleware.sentry import init_sentry
from app.utils.db import close_db, engine, init_db
from app.utils.errors import ErrorCode, RewardError
from app.utils.json_utils import ORJSONResponse
from app.utils.redis_client import close_redis, get_redis, init_redis

APP_VERSION = "1.0.0"

settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.app_env == "production",
    app_env=settings.app_env,
)
logger = get_logger(__name__)

sentry_enabled = init_sentry(
    dsn=settings.sentry_dsn,
    environment=settings.app_env,
    release=APP_VERSION,
    traces_sample_rate=settings.sentry_traces_sample_rate
    if settings.app_env == "production"
    else 0.0,
)
if sentry_enabled:
    logger.info("Sentry error tracking initialized")
elif settings.app_env == "production":
    logger.warning("Sentry DSN not configured - error tracking disabled")


# =============================================================================
# Lifespan Events
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting application...")

    try:
        await init_db()
        logger.info("Database connection established")

        if await init_redis() is not None:
            logger.info("Redis connection established")

        logger.info("Application startup complete")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("Shutting down application...")
    try:
        await close_db()
        await close_redis()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Reward Ledger API",
    version=APP_VERSION,
    description="Token rewards, daily check-ins and wallet transfers",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)


# =============================================================================
# Middleware
# =============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach X-Request-ID to the request, the response and every log line."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = datetime.now(timezone.utc)

        clear_context()
        bind_context(trace_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        duration = (datetime.now(timezone.utc) - started).total_seconds()
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=round(duration, 3),
        )
        return response


app.add_middleware(RequestIDMiddleware)

cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Error Handlers
# =============================================================================


def get_request_id(request: Request) -> str:
    """Get request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


def status_for_error(code: str) -> int:
    """Map a reward error code to an HTTP status."""
    if "NOT_FOUND" in code:
        return status.HTTP_404_NOT_FOUND
    if "UNAVAILABLE" in code:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if "LIMIT" in code:
        return status.HTTP_429_TOO_MANY_REQUESTS
    if "DUPLICATE" in code or "ALREADY" in code or "TRANSITION" in code or "LOCK" in code:
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(RewardError)
async def reward_error_handler(request: Request, exc: RewardError) -> ORJSONResponse:
    """Handle reward ledger errors."""
    trace_id = get_request_id(request)
    status_code = status_for_error(exc.code)

    log = logger.error if status_code >= 500 else logger.warning
    log("reward_error", code=exc.code, message=exc.message, trace_id=trace_id)

    headers = None
    if exc.retryable:
        headers = {"Retry-After": "1"}

    return ORJSONResponse(
        status_code=status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
        ),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    """Handle request body/query validation errors."""
    return ORJSONResponse(
        status_code=422,
        content=create_error_response(
            code=ErrorCode.INVALID_REQUEST.value,
            message="Request validation failed",
            details={"errors": jsonable_encoder(exc.errors())},
            trace_id=get_request_id(request),
        ),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(
    request: Request, exc: HTTPException
) -> ORJSONResponse:
    """Handle HTTP exceptions."""
    trace_id = get_request_id(request)

    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = dict(exc.detail)
        content["traceId"] = trace_id
    else:
        content = create_error_response(
            code="HTTP_ERROR",
            message=str(exc.detail),
            trace_id=trace_id,
        )

    return ORJSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Handle unexpected exceptions."""
    trace_id = get_request_id(request)
    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        trace_id=trace_id,
        exc_info=True,
    )

    message = "Internal server error"
    if settings.app_debug:
        message = f"{type(exc).__name__}: {exc}"

    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            code=ErrorCode.INTERNAL_ERROR.value,
            message=message,
            trace_id=trace_id,
        ),
    )


# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/health", tags=["Health"], summary="Health check endpoint")
async def health_check() -> dict[str, Any]:
    """Database and Redis connectivity."""
    health_status: dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": APP_VERSION,
        "services": {
            "database": "unknown",
            "redis": "not configured",
        },
    }
    overall_healthy = True

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["services"]["database"] = "healthy"
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {e}"
        overall_healthy = False
        logger.error(f"Database health check failed: {e}")

    current_redis = get_redis()
    if current_redis is not None:
        try:
            await current_redis.ping()
            health_status["services"]["redis"] = "healthy"
        except Exception as e:
            health_status["services"]["redis"] = f"unhealthy: {e}"
            overall_healthy = False
            logger.error(f"Redis health check failed: {e}")

    if not overall_healthy:
        health_status["status"] = "degraded"
    return health_status


@app.get("/health/live", tags=["Health"], summary="Liveness probe")
async def liveness_probe() -> dict[str, str]:
    return {"status": "alive"}


# =============================================================================
# API Routers
# =============================================================================

API_V1_PREFIX = "/api/v1"

app.include_router(rewards.router, prefix=API_V1_PREFIX)
app.include_router(checkin.router, prefix=API_V1_PREFIX)
app.include_router(wallet.router, prefix=API_V1_PREFIX)
