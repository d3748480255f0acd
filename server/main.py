"""
FastAPI backend for dataclips: saved read-only SQL queries with result caching.
"""

import logging
from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.config import Settings
from core.errors import ValidationError
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import addons, cache, dataclips, sql

# Initialize settings and logging
settings = Settings()
configure_logging(settings)
logger = get_logger(__name__)

# Suppress noisy loggers
logging.getLogger("uvicorn").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting Dataclips service")
    set_startup_time()

    container.database().startup()
    container.cache_backend().startup()

    app_settings = container.settings()
    cleanup_service = container.cleanup()
    if app_settings.cleanup_enabled:
        await cleanup_service.start()

    logger.info("Services started successfully",
                query_cache=app_settings.query_cache_enabled,
                schema_cache=app_settings.schema_cache_enabled)
    yield

    if app_settings.cleanup_enabled:
        await cleanup_service.stop()
    container.cache_backend().shutdown()
    container.database().shutdown()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Dataclips",
    version="1.0.0",
    description="Saved read-only SQL queries with cached results",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info("Rejected request", path=request.url.path, error=str(exc))
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "errors": [str(exc)]}
    )


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# Add CORS middleware (must be AFTER exception middleware)
logger.info("Configuring CORS middleware",
           origins_count=len(settings.cors_origins),
           origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(dataclips.router)
app.include_router(sql.router)
app.include_router(cache.router)
app.include_router(addons.router)


@app.get("/health")
def health_check():
    """Detailed health check."""
    app_settings = container.settings()
    return {
        "service": "dataclips",
        "version": "1.0.0",
        "environment": "development" if app_settings.is_development else "production",
        **get_health_status(container.database(), container.cache_backend(), app_settings),
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Dataclips service",
               host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
        workers=1 if settings.debug else settings.workers
    )
