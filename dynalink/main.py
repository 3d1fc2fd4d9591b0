"""Main application module.

This module initializes the FastAPI application, includes routes,
and configures middleware, exception handlers and the lifecycle of the
process-wide clients.
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dynalink.api import api_router
from dynalink.api.errors import APIError, api_error_handler
from dynalink.cache.resolution_cache import NullResolutionCache, ResolutionCache
from dynalink.core.config import settings
from dynalink.core.incident_log import setup_incident_logging
from dynalink.core.logging import setup_logging
from dynalink.core.redis import RedisClientManager
from dynalink.core.telemetry import instrument_app, setup_telemetry
from dynalink.db.base import create_engine, create_session_factory, init_models
from dynalink.middleware.logging import RequestLoggingMiddleware
from dynalink.services.background import BackgroundTaskRunner

# Drain budget for pending side effects on shutdown
SHUTDOWN_DRAIN_TIMEOUT_SECONDS = 5.0

# Setup logging
logger = setup_logging()
setup_incident_logging()

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.REQUEST_LOGGING_ENABLED:
    app.add_middleware(RequestLoggingMiddleware)

# Include API router
app.include_router(api_router)

app.add_exception_handler(APIError, api_error_handler)

# Telemetry middleware must be installed before the app starts serving
setup_telemetry(app)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to catch and log all unhandled exceptions."""
    error_id = f"error-{uuid.uuid4().hex[:12]}"

    logger.opt(exception=exc).bind(
        error_id=error_id,
        method=request.method,
        path=request.url.path,
    ).error(f"Unhandled exception in {request.method} {request.url.path}")

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_code": "internal_error",
            "error_id": error_id,
        }
    )


@app.on_event("startup")
async def startup_event():
    """Build the process-wide clients and store them on ``app.state``."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT.value}")

    engine = create_engine()
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    if settings.DB_CREATE_TABLES:
        await init_models(engine)

    if settings.CACHE_ENABLED:
        redis_manager = RedisClientManager(settings.REDIS_URI, settings.REDIS_MAX_CONNECTIONS)
        app.state.redis_manager = redis_manager
        app.state.cache = ResolutionCache(
            redis_manager.get_client(),
            default_ttl=settings.CACHE_DEFAULT_TTL,
            timeout=settings.CACHE_TIMEOUT_SECONDS,
            key_prefix=settings.CACHE_KEY_PREFIX,
        )
        if not await redis_manager.ping():
            logger.warning("Redis is not reachable; redirects will read the store until it recovers")
    else:
        logger.info("Resolution cache is disabled")
        app.state.redis_manager = None
        app.state.cache = NullResolutionCache(settings.CACHE_DEFAULT_TTL)

    app.state.task_runner = BackgroundTaskRunner()

    if settings.OTEL_ENABLED:
        instrument_app(db_engine=engine)


@app.on_event("shutdown")
async def shutdown_event():
    """Drain side effects and release the clients."""
    logger.info(f"Shutting down {settings.APP_NAME}")

    task_runner = getattr(app.state, "task_runner", None)
    if task_runner is not None:
        await task_runner.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT_SECONDS)

    redis_manager = getattr(app.state, "redis_manager", None)
    if redis_manager is not None:
        await redis_manager.close()

    engine = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")
