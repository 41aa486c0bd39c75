"""
Craftify Backing Store API

A FastAPI-based reference backend for the Craftify sync engine.
Provides the public records database, per-user private storage, query
subscriptions and a notification outbox.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.core.config import settings
from api.models.schemas import ErrorResponse, HealthResponse
from api.models.store import RecordStore, StoreError
from api.routes import auth, private, records, subscriptions

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs startup and shutdown logic for the application.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")

    yield

    # Shutdown
    logger.info("Shutting down application")


# =============================================================================
# Exception Handlers
# =============================================================================

async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.detail if isinstance(exc.detail, str) else "Error",
            detail=str(exc.detail) if not isinstance(exc.detail, str) else None,
            status_code=exc.status_code,
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )


async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Map store errors (missing record, conflict, ownership) to their status codes."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=str(exc),
            status_code=exc.status_code,
        ).model_dump(),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle request validation errors with details."""
    error_messages = []

    for error in exc.errors():
        loc = " -> ".join(str(x) for x in error["loc"])
        error_messages.append(f"{loc}: {error['msg']}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="Validation Error",
            detail="; ".join(error_messages),
            status_code=422,
        ).model_dump(),
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")

    # Don't expose internal errors in production
    if settings.environment == "production":
        detail = "An unexpected error occurred"
    else:
        detail = str(exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal Server Error",
            detail=detail,
            status_code=500,
        ).model_dump(),
    )


# =============================================================================
# Health Check & Root Endpoints
# =============================================================================

async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Unauthenticated; the sync engine's connectivity probe polls it.
    """
    return HealthResponse(status="healthy", version=settings.app_version)


async def root() -> dict[str, Any]:
    """
    Root endpoint with API information.

    Provides links to documentation and basic API info.
    """
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "documentation": {
            "openapi": "/api/openapi.json",
            "swagger": "/api/docs",
            "redoc": "/api/redoc",
        },
        "endpoints": {
            "auth": f"{settings.api_v1_prefix}/auth",
            "records": f"{settings.api_v1_prefix}/records",
            "private": f"{settings.api_v1_prefix}/private",
            "subscriptions": f"{settings.api_v1_prefix}/subscriptions",
            "notifications": f"{settings.api_v1_prefix}/notifications",
            "health": "/health",
        },
    }


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(store: Optional[RecordStore] = None) -> FastAPI:
    """Build the application around a record store (a fresh one by default)."""
    app = FastAPI(
        title=settings.app_name,
        description="""
Craftify Backing Store serves the recipe catalog and per-user data.

## Features

* **Records** - Recipes, console commands and recipe reports with cursor paging
* **Private Store** - Per-user favorites and recent searches
* **Subscriptions** - Report status change notifications

## Authentication

All endpoints (except /health) require JWT authentication.
Use the `/api/v1/auth/token` endpoint to obtain a token.
        """,
        version=settings.app_version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.store = store or RecordStore()

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request Timing Middleware
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to all responses."""
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        return response

    # Request Logging Middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests."""
        logger.debug(f"{request.method} {request.url.path}")
        response = await call_next(request)
        logger.debug(f"{request.method} {request.url.path} - {response.status_code}")
        return response

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(StoreError, store_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    app.add_api_route(
        f"{settings.api_v1_prefix}/health",
        health_check,
        methods=["GET"],
        response_model=HealthResponse,
        tags=["Health"],
        include_in_schema=False,
    )
    app.add_api_route("/", root, methods=["GET"], tags=["Root"], summary="API Information")

    # Include all routers under /api/v1 prefix
    for router in (
        auth.router,
        auth.users_router,
        records.router,
        private.router,
        subscriptions.router,
        subscriptions.notifications_router,
    ):
        app.include_router(router, prefix=settings.api_v1_prefix)

    return app


app = create_app()


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
