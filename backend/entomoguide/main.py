"""
EntomoGuide Backend: FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   `create_app()` builds the collaborators (database, file storage,
       notification dispatcher, services), stores them on `app.state`,
       registers middleware, exception handlers and routers. Tests call it
       with their own collaborators.
Who:   uvicorn (`uvicorn entomoguide.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware:  Request ID → Rate Limit → Logging → CORS   │
    │                                                          │
    │  Routers:     accounts │ catalog │ images │ health       │
    │                                                          │
    │  app.state:   database, storage, dispatcher, tokens,     │
    │               store, workflow, attachments, catalog      │
    │                                                          │
    │  Exception handlers: EntomoGuideError tree → 4xx/5xx     │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, optional create_all
    Shutdown: dispose the database engine
"""

import logging
import secrets
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from entomoguide import __version__
from entomoguide.config import Settings, settings as default_settings
from entomoguide.database import Database
from entomoguide.exceptions import (
    AttachmentLimitExceededError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DependencyFailureError,
    DuplicateEmailError,
    EntomoGuideError,
    InvariantViolationError,
    NotFoundError,
    NotificationDeliveryError,
    RegistrationPendingError,
    ValidationError,
)
from entomoguide.middleware.logging import RequestLoggingMiddleware
from entomoguide.middleware.rate_limit import RateLimitMiddleware
from entomoguide.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware, request_id_var
from entomoguide.routes import accounts, catalog, health, images
from entomoguide.services.account_workflow import AccountWorkflow
from entomoguide.services.attachment_manager import AttachmentManager
from entomoguide.services.catalog_service import CatalogService
from entomoguide.services.credential_store import CredentialStore
from entomoguide.services.file_service import FileService
from entomoguide.services.notification import NotificationDispatcher, SMTPNotificationDispatcher
from entomoguide.services.security import TokenService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configures the root logger once at startup.

    Format: %(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s
    The request id comes from RequestIDLogFilter ("-" outside a request).
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDLogFilter())

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: Settings = app.state.settings

    setup_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("EntomoGuide Backend %s starting up...", __version__)

    try:
        config.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health and the catalog work without mail
        logger.error("Configuration error: %s", e)

    if config.db_create_all:
        await app.state.database.create_all()
        logger.info("Database tables created (DB_CREATE_ALL=true)")

    logger.info("Upload root: %s", app.state.storage.upload_root)
    logger.info("Server ready at http://%s:%d", config.backend_host, config.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("EntomoGuide Backend shutting down...")
    await app.state.database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error(status_code: int, code: str, message: str, details=None, headers=None) -> JSONResponse:
    content = {"error": code, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps the exception tree onto HTTP responses.

    Handler hierarchy (Starlette picks the closest class in the MRO):
        ValidationError, RequestValidationError → 400
        InvariantViolationError                 → 400
        AuthenticationError                     → 401
        AuthorizationError                      → 403
        NotFoundError                           → 404
        ConflictError                           → 409
        RateLimitExceededError                  → 429 (built by RateLimitMiddleware)
        NotificationDeliveryError               → 502
        DependencyFailureError                  → 500
        EntomoGuideError (base), Exception      → 500

    Validation and invariant errors return their context as `details`; 5xx
    bodies never expose internal context (it is logged instead).
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("Validation error: %s", exc.message)
        return _error(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        # loc/msg/type only: the rejected input may contain a password
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        logger.warning("Request validation failed: %s", [e["loc"] for e in errors])
        return _error(400, "validation_error", "The request is missing or has invalid fields.", {"errors": errors})

    @app.exception_handler(InvariantViolationError)
    async def handle_invariant_violation(request: Request, exc: InvariantViolationError):
        logger.info("Invariant violation: %s", exc.message)
        code = "invariant_violation"
        if isinstance(exc, AttachmentLimitExceededError):
            code = "attachment_limit_exceeded"
        return _error(400, code, exc.message, exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error(
            401,
            "authentication_error",
            exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(AuthorizationError)
    async def handle_authorization_error(request: Request, exc: AuthorizationError):
        code = "registration_pending" if isinstance(exc, RegistrationPendingError) else "forbidden"
        return _error(403, code, exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error(404, "not_found", exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        code = "duplicate_email" if isinstance(exc, DuplicateEmailError) else "conflict"
        return _error(409, code, exc.message)

    @app.exception_handler(NotificationDeliveryError)
    async def handle_notification_failure(request: Request, exc: NotificationDeliveryError):
        logger.error("Notification failure: %s | Context: %s", exc.message, exc.context)
        # The account id and new status tell the client the write did happen
        details = {k: exc.context[k] for k in ("id", "status") if k in exc.context}
        return _error(502, "notification_failed", exc.message, details)

    @app.exception_handler(DependencyFailureError)
    async def handle_dependency_failure(request: Request, exc: DependencyFailureError):
        logger.error("Dependency failure: %s | Context: %s", exc.message, exc.context)
        return _error(500, "server_error", exc.message)

    @app.exception_handler(EntomoGuideError)
    async def handle_app_error(request: Request, exc: EntomoGuideError):
        logger.error("Unhandled application error: %s | Context: %s", exc.message, exc.context)
        return _error(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unexpected error: %s", exc, exc_info=True)
        return _error(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    storage: Optional[FileService] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    """
    Assembles the application.

    Any collaborator not passed in is built from `settings` (the module-level
    Settings by default).
    """
    config = settings or default_settings

    jwt_secret = config.jwt_secret
    if not jwt_secret:
        # Tokens signed with this secret stop working on restart
        logger.warning("JWT_SECRET is not set; using a random per-process secret")
        jwt_secret = secrets.token_urlsafe(48)

    database = database or Database.from_settings(config)
    storage = storage or FileService.from_settings(config)
    dispatcher = dispatcher or SMTPNotificationDispatcher.from_settings(config)

    tokens = TokenService(jwt_secret, config.jwt_algorithm, config.jwt_expire_hours)
    store = CredentialStore(bcrypt_rounds=config.bcrypt_rounds)

    app = FastAPI(
        title="EntomoGuide API",
        description=(
            "Insect guide backend: account registration with administrator "
            "approval, catalog of categories and insects, and insect images."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.database = database
    app.state.storage = storage
    app.state.dispatcher = dispatcher
    app.state.tokens = tokens
    app.state.store = store
    app.state.workflow = AccountWorkflow(store, tokens, dispatcher)
    app.state.attachments = AttachmentManager(storage, limit=config.max_images_per_insect)
    app.state.catalog = CatalogService(storage)

    # ── Middleware (last added runs first) ────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=config.auth_rate_limit_requests,
        window_seconds=config.auth_rate_limit_window,
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(accounts.router)
    app.include_router(catalog.router)
    app.include_router(images.router)
    app.include_router(health.router)

    return app


app = create_app()
