"""
UrbanFix Issue Lifecycle Engine - FastAPI Application Entry Point

Civic issue intake, triage and resolution for city departments.

DESIGN PRINCIPLES:
- AI assists classification, never blocks report ingestion
- Priority is system-derived, not user-editable
- Strict status workflow, every change on the timeline
- Rewards and notifications never roll back the action that triggered them
"""

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.errors import (
    DuplicateConflict,
    InvalidTransition,
    LifecycleError,
    NotFoundError,
    TransientStorageError,
    ValidationError,
)
from app.core.settings import Settings, settings
from app.dependencies import ServiceContainer, build_container
from app.routes import gamification, health, issues, municipal, notifications, workflow

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.message, "field": exc.field},
        )

    @app.exception_handler(DuplicateConflict)
    async def duplicate_handler(request: Request, exc: DuplicateConflict):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": str(exc),
                "existing_issue_id": exc.existing_issue_id,
                "distance_meters": exc.distance_meters,
            },
        )

    @app.exception_handler(InvalidTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidTransition):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": str(exc),
                "current_status": exc.current_status,
                "requested_status": exc.requested_status,
                "allowed": exc.allowed,
            },
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(TransientStorageError)
    async def transient_storage_handler(request: Request, exc: TransientStorageError):
        logger.warning(f"⚠️ {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})

    @app.exception_handler(LifecycleError)
    async def lifecycle_error_handler(request: Request, exc: LifecycleError):
        logger.error(f"❌ {request.method} {request.url.path}: unhandled {type(exc).__name__}: {exc}")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})

    # Pydantic validation error handler
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors()},
        )

    # Global exception handler to catch ALL exceptions
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"🔥 Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"Internal server error: {str(exc)}"},
        )


async def rescoring_loop(container: ServiceContainer, interval_minutes: float) -> None:
    """Periodically refresh the priority of open issues so age is reflected."""
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            await container.priority.rescore_open_issues()
        except Exception as e:
            logger.error(f"Rescoring sweep failed: {e}", exc_info=True)


def create_app(config: Settings = settings, container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI app.

    When no container is supplied, one is built on startup from `config`
    (in-memory store with USE_MOCK_DB, Firestore otherwise).
    """
    app = FastAPI(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        description="Civic issue intake, triage and resolution engine",
        debug=config.DEBUG,
    )
    if container is not None:
        app.state.container = container

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Application lifecycle events
    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}")
        if getattr(app.state, "container", None) is None:
            app.state.container = build_container(config)

        app.state.rescore_task = None
        if config.RESCORE_INTERVAL_MINUTES > 0:
            app.state.rescore_task = asyncio.create_task(
                rescoring_loop(app.state.container, config.RESCORE_INTERVAL_MINUTES)
            )

    @app.on_event("shutdown")
    async def shutdown_event():
        task = getattr(app.state, "rescore_task", None)
        if task is not None:
            task.cancel()
        logger.info(f"Shutting down {config.APP_NAME}")

    # Include routers
    app.include_router(health.router)
    app.include_router(issues.router)
    app.include_router(workflow.router)
    app.include_router(municipal.router)
    app.include_router(gamification.router)
    app.include_router(notifications.router)

    # Root endpoint
    @app.get("/")
    async def root():
        """
        Root endpoint - API information.
        """
        return {
            "service": config.APP_NAME,
            "version": config.APP_VERSION,
            "status": "running",
            "docs": "/docs",
            "health": "/health",
        }

    return app


logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = create_app()
