"""
Anon-Inbox Service - FastAPI Application Entry Point.

Anonymous messaging: verified users own an inbox addressed by their
username; anyone may post to it while it accepts messages.

Architecture: Clean Architecture with DDD
- Domain: Entities, Value Objects, Acceptance Gate, Domain Services
- Infrastructure: Repositories, JWT, Password Hashing, Suggestion Client
- Presentation: REST API
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from . import __version__
from .api import router as api_router
from .auth import IdentityResolver, LoggingCodeSender
from .config import CORSConfig, InboxServiceSettings
from .domain.acceptance import AcceptanceGate
from .domain.identity import IdentityService
from .domain.service import MessageService
from .domain.value_objects import PasswordPolicy
from .events import LoggingEventPublisher
from .infrastructure.jwt_service import JWTConfig, JWTService
from .infrastructure.password_service import PasswordConfig, PasswordService
from .infrastructure.repository import RepositoryFactory, UserRepository
from .infrastructure.suggestion_service import SuggestionService

logger = structlog.get_logger(__name__)


class ServiceState:
    """Container for service dependencies following Clean Architecture."""

    def __init__(self) -> None:
        # Configuration
        self.settings: InboxServiceSettings | None = None

        # Infrastructure Layer
        self.jwt_service: JWTService | None = None
        self.password_service: PasswordService | None = None
        self.suggestion_service: SuggestionService | None = None
        self.event_publisher: LoggingEventPublisher | None = None
        self.mongo_client: Any | None = None

        # Repository Layer
        self.repository_factory: RepositoryFactory | None = None
        self.user_repository: UserRepository | None = None

        # Domain Services
        self.acceptance_gate: AcceptanceGate | None = None
        self.message_service: MessageService | None = None
        self.identity_service: IdentityService | None = None

        # Application Services
        self.identity_resolver: IdentityResolver | None = None

        # State tracking
        self.initialized: bool = False
        self.start_time: datetime = datetime.now(timezone.utc)

    @property
    def stats(self) -> dict[str, Any]:
        """Get service statistics."""
        message_stats = self.message_service.get_statistics() if self.message_service else {}
        identity_stats = self.identity_service.get_statistics() if self.identity_service else {}
        suggestion_stats = {}
        if self.suggestion_service:
            suggestion_stats = {
                f"suggestion_{k}": v for k, v in self.suggestion_service.get_statistics().items()
            }
        return {
            **message_stats,
            **identity_stats,
            **suggestion_stats,
            "events_published": self.event_publisher.published_count if self.event_publisher else 0,
            "uptime_seconds": (datetime.now(timezone.utc) - self.start_time).total_seconds(),
        }

    def reset(self) -> None:
        """Reset service state for testing."""
        if self.repository_factory:
            self.repository_factory.reset()
        if self.message_service:
            self.message_service.reset_statistics()


def configure_logging(settings: InboxServiceSettings) -> None:
    """Configure structlog for the service environment."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.service.is_development():
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.service.log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_state(settings: InboxServiceSettings, mongo_database: Any | None = None) -> ServiceState:
    """
    Wire service dependencies.

    1. Infrastructure Layer (tokens, hashing, external clients)
    2. Repository Layer (data access)
    3. Domain Layer (business logic)
    4. Application Layer (session resolution)
    """
    state = ServiceState()
    state.settings = settings

    # --- 1. Infrastructure Layer ---
    state.jwt_service = JWTService(JWTConfig(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        access_token_expire_minutes=settings.access_token_expire_minutes,
    ))
    state.password_service = PasswordService(PasswordConfig(
        argon2_time_cost=settings.argon2_time_cost,
        argon2_memory_cost=settings.argon2_memory_cost,
    ))
    state.suggestion_service = SuggestionService(settings.suggestion)
    state.event_publisher = LoggingEventPublisher()

    # --- 2. Repository Layer ---
    state.repository_factory = RepositoryFactory(
        settings.repository,
        mongo_database=mongo_database,
        users_collection=settings.mongo.users_collection,
    )
    state.user_repository = state.repository_factory.get_user_repository()

    # --- 3. Domain Layer ---
    state.acceptance_gate = AcceptanceGate(
        state.user_repository,
        event_publisher=state.event_publisher,
        max_length=settings.message_max_length,
    )
    state.message_service = MessageService(
        state.user_repository,
        acceptance_gate=state.acceptance_gate,
        event_publisher=state.event_publisher,
    )
    state.identity_service = IdentityService(
        state.user_repository,
        password_service=state.password_service,
        jwt_service=state.jwt_service,
        event_publisher=state.event_publisher,
        code_sender=LoggingCodeSender(log_codes=settings.service.is_development()),
        password_policy=PasswordPolicy(min_length=settings.password_min_length),
        verify_code_expiry_minutes=settings.verify_code_expiry_minutes,
    )

    # --- 4. Application Layer ---
    state.identity_resolver = IdentityResolver(
        state.jwt_service,
        cookie_name=settings.service.session_cookie_name,
    )

    state.initialized = True
    return state


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Loads configuration, opens the MongoDB client when enabled and wires
    the service state; closes the client on shutdown.
    """
    settings = InboxServiceSettings.load()
    configure_logging(settings)

    logger.info("inbox_service_starting", version=__version__)

    mongo_client = None
    mongo_database = None
    if settings.repository.use_mongo:
        from pymongo import AsyncMongoClient

        mongo_client = AsyncMongoClient(
            settings.mongo.uri,
            serverSelectionTimeoutMS=settings.mongo.server_selection_timeout_ms,
            tz_aware=True,
        )
        mongo_database = mongo_client[settings.mongo.database]

    state = build_state(settings, mongo_database=mongo_database)
    state.mongo_client = mongo_client

    if mongo_client is not None:
        await state.user_repository.ensure_indexes()

    app.state.service = state

    logger.info(
        "inbox_service_initialized",
        storage="mongo" if settings.repository.use_mongo else "in_memory",
        jwt_algorithm=settings.jwt_algorithm,
        access_token_minutes=settings.access_token_expire_minutes,
        message_max_length=settings.message_max_length,
    )

    yield

    # --- Cleanup ---
    logger.info("inbox_service_shutting_down", stats=state.stats)
    state.initialized = False
    if mongo_client is not None:
        await mongo_client.close()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    # Load settings early for CORS configuration
    try:
        cors_config = InboxServiceSettings().service.cors
    except Exception:
        # Secrets may not be configured yet; lifespan reports the error on startup
        cors_config = CORSConfig()

    app = FastAPI(
        title="Anon-Inbox Service",
        description="Anonymous messages to user inboxes with owner-controlled acceptance",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.get_allowed_origins(),
        allow_credentials=cors_config.allow_credentials,
        allow_methods=cors_config.get_allowed_methods(),
        allow_headers=cors_config.get_allowed_headers(),
    )

    register_exception_handlers(app)
    register_health_endpoints(app)

    app.include_router(api_router, prefix="/api/v1")

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Map request validation and unexpected errors to the response envelope."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request validation errors."""
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": message},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors."""
        logger.error("unhandled_exception", error=str(exc), path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Internal server error"},
        )


def register_health_endpoints(app: FastAPI) -> None:
    """Liveness, readiness and status probes."""

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "healthy", "service": "anon-inbox"}

    @app.get("/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """Readiness probe."""
        state: ServiceState | None = getattr(request.app.state, "service", None)
        if state is None or not state.initialized:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "reason": "Service not initialized"},
            )
        return {"status": "ready", "service": "anon-inbox", "initialized": state.initialized}

    @app.get("/status", tags=["Health"])
    async def service_status(request: Request) -> dict[str, Any]:
        """Get service status and statistics."""
        state: ServiceState = request.app.state.service
        return {
            "status": "operational" if state.initialized else "initializing",
            "service": "anon-inbox",
            "version": __version__,
            "statistics": state.stats,
            "settings": {
                "storage": "mongo" if state.settings and state.settings.repository.use_mongo else "in_memory",
                "suggestions_enabled": bool(state.suggestion_service and state.suggestion_service.enabled),
                "message_max_length": state.settings.message_max_length if state.settings else None,
            },
        }


# Create application instance
app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = InboxServiceSettings.load()
    uvicorn.run(
        "anon_inbox.main:app",
        host=settings.service.host,
        port=settings.service.port,
        log_level=settings.service.log_level.lower(),
    )


if __name__ == "__main__":
    run()
