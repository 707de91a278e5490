"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import httpx
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sponsor_chain import __version__
from sponsor_chain.api.routes import approvals_router, health_router, hierarchy_router
from sponsor_chain.calculators import CadreCatalog, FeeRuleEngine, FeeSchedule
from sponsor_chain.config import Settings, get_settings
from sponsor_chain.database import create_schema, dispose_db, init_db
from sponsor_chain.directory import Directory, InMemoryDirectory, build_rest_directory
from sponsor_chain.errors import (
    ChainError,
    ChainLocked,
    DirectoryUnavailable,
    InvalidReference,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from sponsor_chain.logging_config import configure_logging
from sponsor_chain.services import WorkflowService

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[ChainError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidStateTransition: status.HTTP_409_CONFLICT,
    ChainLocked: status.HTTP_423_LOCKED,
    InvalidReference: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DirectoryUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: ChainError) -> int:
    """HTTP status for a workflow error."""
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def build_directory(settings: Settings) -> tuple[Directory, httpx.AsyncClient | None]:
    """REST directory when configured, otherwise an empty in-memory one."""
    if settings.directory_base_url:
        return build_rest_directory(
            settings.directory_base_url,
            timeout_seconds=settings.directory_timeout_seconds,
        )
    logger.warning(
        "DIRECTORY_BASE_URL not set; using an empty in-memory agent directory"
    )
    return InMemoryDirectory(), None


def build_workflow(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    directory: Directory,
) -> WorkflowService:
    """Wire the workflow service from settings."""
    catalog = CadreCatalog.default(entry_code=settings.entry_cadre_code)
    schedule = FeeSchedule(reduced=settings.reduced_fee, standard=settings.standard_fee)
    return WorkflowService(
        session_factory,
        directory,
        FeeRuleEngine(catalog, schedule),
        retry_attempts=settings.store_retry_attempts,
        retry_base_delay=settings.store_retry_base_delay,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    if getattr(app.state, "workflow", None) is not None:
        yield
        return

    settings = get_settings()
    configure_logging(settings.log_level)
    engine, session_factory = init_db()
    if settings.debug:
        await create_schema(engine)

    directory, client = build_directory(settings)
    app.state.session_factory = session_factory
    app.state.workflow = build_workflow(settings, session_factory, directory)
    logger.info("Sponsor chain service %s started", __version__)
    try:
        yield
    finally:
        # Shutdown
        if client is not None:
            await client.aclose()
        await dispose_db()
        app.state.workflow = None


def create_app(
    workflow: WorkflowService | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Passing a pre-built ``workflow`` (and the ``session_factory`` it uses)
    skips the start-up wiring.
    """
    app = FastAPI(
        title="Sponsor Chain API",
        description="Agent fee approvals and payment-gated sponsor chains",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.workflow = workflow
    app.state.session_factory = session_factory or (
        workflow.session_factory if workflow is not None else None
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
    @app.exception_handler(ChainError)
    async def chain_error_handler(request: Request, exc: ChainError) -> JSONResponse:
        """Map workflow errors onto HTTP responses."""
        code = status_for(exc)
        logger.warning(
            "%s %s -> %d %s: %s",
            request.method,
            request.url.path,
            code,
            exc.code,
            exc.message,
        )
        return JSONResponse(status_code=code, content=exc.to_dict())

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
    app.include_router(approvals_router, prefix="/api/v1")
    app.include_router(hierarchy_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
