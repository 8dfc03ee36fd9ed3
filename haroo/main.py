# haroo/main.py
"""
Application entry point: lifecycle, error mapping, middleware and routers.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from haroo.config import settings
from haroo.db.helpers import DatabaseError
from haroo.db.migrate import apply_schema
from haroo.db.pool import db_pool
from haroo.infrastructure.observability.logging import get_logger, log_request, setup_logging
from haroo.middleware.rate_limit_headers import RateLimitHeadersMiddleware
from haroo.middleware.request_context import RequestContextMiddleware
from haroo.routes import admin, billing, health, messages, modes, traces, users
from haroo.services.errors import ErrorKind, HarooServiceError
from haroo.services.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level="DEBUG" if settings.debug else "INFO")
logger = get_logger(__name__)

ERROR_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.PAYMENT_REJECTED: 402,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool (required) and Redis (optional), close both on exit."""
    logger.info(
        "Haroo starting",
        environment=settings.environment,
        app_mode=settings.APP_MODE,
        timezone=settings.TIMEZONE,
    )

    await db_pool.initialize()
    try:
        if settings.DB_AUTO_MIGRATE:
            await apply_schema()
    except Exception as e:
        logger.error("Schema migration failed", error=str(e))
        await db_pool.close()
        raise

    # Rate limiting fails open, so a missing Redis does not block startup
    try:
        await fast_redis.initialize()
    except RuntimeError as e:
        logger.warning("Redis unavailable, rate limiting will fail open", error=str(e))

    yield

    logger.info("Haroo shutting down")
    for name, close in (("redis", fast_redis.close), ("database", db_pool.close)):
        try:
            await close()
        except Exception as e:
            logger.error("Error during shutdown", resource=name, error=str(e))


app = FastAPI(
    title="Haroo",
    description="Daily message modes and location traces",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RateLimitHeadersMiddleware)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(HarooServiceError)
async def service_error_handler(request: Request, exc: HarooServiceError):
    status_code = ERROR_STATUS_CODES.get(exc.kind, 400)
    logger.info(
        "Request denied",
        path=request.url.path,
        kind=exc.kind.value,
        reason=exc.reason,
        status_code=status_code,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(DatabaseError)
async def database_error_handler(request: Request, exc: DatabaseError):
    logger.error(
        "Database error",
        path=request.url.path,
        operation=exc.operation,
        error=str(exc),
    )
    return JSONResponse(
        status_code=503,
        content={"error": "database_unavailable", "message": "Please try again shortly"},
    )


app.include_router(health.router)
app.include_router(modes.router)
app.include_router(billing.router)
app.include_router(messages.router)
app.include_router(traces.router)
app.include_router(users.router)
app.include_router(admin.router)

if settings.is_test_mode():
    from haroo.routes import test_tools

    app.include_router(test_tools.router)
    logger.warning("TEST mode: offset clock and /test-tools routes enabled")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.time() - start_time) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
