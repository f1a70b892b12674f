"""
FastAPI application for the enrollment engine.

Routes:
- /api/enrollment/...  : enrollment sessions, steps and family members
- GET /health          : liveness check
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config.settings import EnrollmentSettings, get_settings
from enrollment.errors import EnrollmentError, EnrollmentValidationError, NotFoundError
from enrollment.session import SessionRegistry
from services.logging_config import configure_logging

from .enrollment_api import router as enrollment_router
from .middleware import RequestIdMiddleware

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[EnrollmentSettings] = None,
    registry: Optional[SessionRegistry] = None,
) -> FastAPI:
    """Build the application with its session registry and error handlers."""
    settings = settings or get_settings()
    if not settings.is_test:
        configure_logging(level=settings.log_level, json_output=settings.json_logs)

    app = FastAPI(
        title=settings.name,
        version=settings.version,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.registry = registry or SessionRegistry(settings=settings)

    app.add_middleware(RequestIdMiddleware)
    app.include_router(enrollment_router)

    # =========================================================================
    # Exception handlers
    # =========================================================================

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        """Unknown session, member or step. The body carries the fallback URL."""
        logger.info(f"Not found: {exc.message}")
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(EnrollmentValidationError)
    async def enrollment_validation_handler(request: Request, exc: EnrollmentValidationError):
        logger.info(f"Rejected request: {exc.message}")
        return JSONResponse(status_code=422, content=exc.to_dict())

    @app.exception_handler(EnrollmentError)
    async def enrollment_error_handler(request: Request, exc: EnrollmentError):
        logger.warning(f"{type(exc).__name__}: {exc.message}")
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors with user-friendly messages."""
        errors = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            errors.append(f"{field}: {error['msg']}")
        return JSONResponse(
            status_code=422,
            content={
                "error": "RequestValidationError",
                "message": "Invalid request data",
                "details": {"validation_errors": errors},
            },
        )

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": settings.version, "environment": settings.environment}

    logger.info(f"{settings.name} {settings.version} ready ({settings.environment})")
    return app
