"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from equity_engine.api.routes import (
    allocations_router,
    board_approvals_router,
    health_router,
    periods_router,
)
from equity_engine.config import get_settings
from equity_engine.database import create_schema, init_db
from equity_engine.errors import (
    AuthorizationError,
    EquityEngineError,
    NotFoundError,
    ValidationError,
)
from equity_engine.events import DomainEvent, EventEmitter
from equity_engine.stores.base import SofrRateSource
from equity_engine.stores.sofr import ManualSofrRateSource

logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[EquityEngineError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
]


def status_for(exc: EquityEngineError) -> int:
    """HTTP status for an engine error; state conflicts default to 409."""
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_409_CONFLICT


def _log_event(event: DomainEvent) -> None:
    logger.debug("Event %s: %s", event.event_type, event.to_json())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    engine, _ = init_db()
    if engine.dialect.name == "sqlite":
        await create_schema(engine)
    yield
    await engine.dispose()


def create_app(
    emitter: EventEmitter | None = None,
    sofr_source: SofrRateSource | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Member Equity Engine API",
        description="Year-end member equity allocation, reconciliation and board approvals",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    app.state.emitter = emitter or EventEmitter()
    app.state.emitter.on_all(_log_event)
    app.state.sofr_source = sofr_source or ManualSofrRateSource()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EquityEngineError)
    async def engine_error_handler(request: Request, exc: EquityEngineError) -> JSONResponse:
        """Map engine errors to structured responses."""
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(allocations_router, prefix="/api/v1")
    app.include_router(board_approvals_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
