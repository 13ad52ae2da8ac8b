"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from execalert.api.deps import close_notification_service
from execalert.api.routes import history, notifications, preferences, templates
from execalert.core.config import Settings, get_settings
from execalert.core.errors import SanitizationError, TemplateNotFoundError, TemplateValidationError
from execalert.core.logging import get_logger, setup_logging
from execalert.storage.redis_client import close_redis_pool, get_redis, init_redis_pool

logger = get_logger(__name__)


def _error(status_code: int, message: str, data: object = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": status_code, "message": message, "data": data},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Application settings; loaded from the environment when omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings)
        logger.info("Starting application", app_name=settings.app_name, version=settings.app_version)

        await init_redis_pool(settings.redis_url)
        logger.info("Redis connection pool initialized")

        yield

        logger.info("Shutting down application")
        await close_notification_service()
        await close_redis_pool()
        logger.info("Redis connection pool closed")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Test execution failure alerting and notification delivery",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(templates.router, prefix="/api/v1")
    app.include_router(history.router, prefix="/api/v1")
    app.include_router(preferences.router, prefix="/api/v1")
    app.include_router(notifications.router, prefix="/api/v1")

    app.mount("/metrics", make_asgi_app())

    # Error response handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        detail = exc.detail
        return _error(
            exc.status_code,
            detail if isinstance(detail, str) else "HTTP error",
            None if isinstance(detail, str) else detail,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        return _error(422, "Validation error", jsonable_errors(exc))

    @app.exception_handler(TemplateNotFoundError)
    async def template_not_found_handler(request: Request, exc: TemplateNotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(TemplateValidationError)
    async def template_validation_handler(request: Request, exc: TemplateValidationError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(SanitizationError)
    async def sanitization_handler(request: Request, exc: SanitizationError) -> JSONResponse:
        return _error(400, str(exc))

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )
        return _error(500, "Internal server error", str(exc) if settings.debug else None)

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint; reports Redis reachability."""
        try:
            redis_ok = bool(await get_redis().ping())
        except Exception as e:
            logger.warning("Health check Redis ping failed", error=str(e))
            redis_ok = False

        return {
            "status": "ok" if redis_ok else "degraded",
            "version": settings.app_version,
            "redis": redis_ok,
        }

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the non-serializable ``ctx`` values."""
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


# Application instance for uvicorn
app = create_app()
