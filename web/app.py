"""
FastAPI application for the property marketplace engine.

Production deployment configuration via environment variables.
"""

import logging
import os
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Final

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    PropertyEngineError,
    StoreUnavailable,
    Unauthenticated,
    ValidationFailed,
)
from web.property_routes import engagement_router, image_router, router as property_router


logger = logging.getLogger(__name__)


# =============================================================================
# Environment Configuration
# =============================================================================

# Production mode detection
IS_PRODUCTION = os.getenv("RAILWAY_ENVIRONMENT") is not None or os.getenv("PRODUCTION", "").lower() == "true"

# CORS configuration - locked down for production
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    # Development fallback only
    ALLOWED_ORIGINS = ["http://localhost:3000", "http://localhost:8000", "http://127.0.0.1:8000"]

# Debug mode - NEVER enabled in production
DEBUG_MODE = os.getenv("DEBUG", "false").lower() == "true" and not IS_PRODUCTION

RETRY_AFTER_SECONDS: Final[int] = 1


# =============================================================================
# Error Mapping
# =============================================================================

STATUS_BY_ERROR: Final[dict[type, int]] = {
    Unauthenticated: 401,
    Forbidden: 403,
    NotFound: 404,
    InvalidTransition: 409,
    Conflict: 409,
    ValidationFailed: 400,
    StoreUnavailable: 503,
}


def status_for(exc: PropertyEngineError) -> int:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_body(status_code: int, message: str, path: str, reasons=None) -> dict:
    """Error envelope shared by every failure response."""
    body = {
        "statusCode": status_code,
        "error": HTTPStatus(status_code).phrase,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": path,
    }
    if reasons:
        body["reasons"] = reasons
    return body


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Property Marketplace Engine",
        description="Property lifecycle and access-control API",
        version="0.1.0",
        # Production settings: disable docs/redoc for private deployment
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=DEBUG_MODE,
    )

    # Healthcheck endpoints are registered first and perform no IO
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        return {
            "status": "healthy",
            "version": "0.1.0",
            "environment": "production" if IS_PRODUCTION else "development",
        }

    # CORS middleware - locked down for production
    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE"],
            allow_headers=["*"],
        )

    # ==========================================================================
    # Exception handlers
    # ==========================================================================

    @app.exception_handler(PropertyEngineError)
    async def engine_error_handler(request: Request, exc: PropertyEngineError):
        status_code = status_for(exc)
        reasons = exc.reasons if isinstance(exc, ValidationFailed) else None
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
        if status_code >= 500:
            logger.warning("%s %s unavailable: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            error_body(status_code, exc.message, request.url.path, reasons),
            status_code=status_code,
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        reasons = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            reasons.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        message = reasons[0] if reasons else "Invalid request"
        return JSONResponse(
            error_body(400, message, request.url.path, reasons),
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
        )
        message = "Internal server error" if IS_PRODUCTION else str(exc) or "Internal server error"
        return JSONResponse(
            error_body(500, message, request.url.path),
            status_code=500,
        )

    app.include_router(property_router)
    app.include_router(image_router)
    app.include_router(engagement_router)

    return app


# Create app instance for uvicorn
app = create_app()
