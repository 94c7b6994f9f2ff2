"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_core.api.routes import health_router, payroll_router
from payroll_core.config import settings
from payroll_core.database import init_db
from payroll_core.errors import (
    DuplicatePeriodError,
    LoanDeductionConflict,
    NotFoundError,
    PayrollError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    engine, _ = init_db()
    yield
    await engine.dispose()


def error_response(status_code: int, exc: PayrollError, code: str, **context) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": str(exc),
            "code": code,
            "context": {k: str(v) for k, v in context.items() if v is not None} or None,
        },
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Core API",
        description="Payroll preview, scenario comparison and run finalization",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return error_response(status.HTTP_400_BAD_REQUEST, exc, "VALIDATION_ERROR", field=exc.field)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return error_response(
            status.HTTP_404_NOT_FOUND, exc, "NOT_FOUND", entity=exc.entity, id=exc.entity_id
        )

    @app.exception_handler(DuplicatePeriodError)
    async def duplicate_period_handler(request: Request, exc: DuplicatePeriodError) -> JSONResponse:
        return error_response(
            status.HTTP_409_CONFLICT,
            exc,
            "DUPLICATE_PERIOD",
            period=exc.period,
            calendar_key=exc.calendar_key,
        )

    @app.exception_handler(LoanDeductionConflict)
    async def loan_conflict_handler(request: Request, exc: LoanDeductionConflict) -> JSONResponse:
        return error_response(
            status.HTTP_409_CONFLICT,
            exc,
            "LOAN_DEDUCTIONS_OUTSTANDING",
            payroll_run_id=exc.payroll_run_id,
            outstanding=exc.outstanding,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payroll_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
