"""filevault FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It wires middleware (request-ID, metrics, request logging,
CORS, auth guard), the share routers, and injects the share store, session
store, file storage and audit sink.

Usage:
    # Local development
    from filevault import create_app, Settings
    app = create_app(Settings())

    # Production
    app = create_app(Settings.from_env())

    # Testing (full DI control)
    app = create_app(settings, share_repo=InMemoryShareRepository(), ...)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from .db import SQLiteShareRepository
from .observability import configure_logging, get_logger, metrics_text
from .observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)
from .security import (
    AuthGuardMiddleware,
    InMemorySessionStore,
    JWTSessionStore,
    SessionStore,
)
from .settings import Settings
from .sharing import (
    LoggingShareAuditEmitter,
    ShareAccessController,
    ShareAuditEmitter,
    ShareRepository,
    create_share_access_router,
    create_share_router,
)
from .storage import FileStorage, LocalFileStorage

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for the injected collaborators.

    Stored on ``app.state.deps`` so route handlers and tests can reach them.
    """

    share_repo: ShareRepository
    session_store: SessionStore
    storage: FileStorage
    audit_emitter: ShareAuditEmitter
    controller: ShareAccessController


def _default_session_store(settings: Settings) -> SessionStore:
    if settings.session_secret:
        return JWTSessionStore(settings.session_secret)
    return InMemorySessionStore()


def create_app(
    settings: Settings | None = None,
    *,
    share_repo: ShareRepository | None = None,
    session_store: SessionStore | None = None,
    storage: FileStorage | None = None,
    audit_emitter: ShareAuditEmitter | None = None,
) -> FastAPI:
    """Create a configured filevault FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        share_repo: Share store. Defaults to SQLite at ``database_path``.
        session_store: Bearer token validation. Defaults to HS256 JWTs when
            a session secret is configured, else an in-memory store.
        storage: File storage. Defaults to the local tree at ``storage_path``.
        audit_emitter: Audit sink. Defaults to the structured log.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = Settings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "filevault settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging(settings)

    share_repo = share_repo or SQLiteShareRepository(settings.database_path)
    session_store = session_store or _default_session_store(settings)
    storage = storage or LocalFileStorage(settings.storage_path)
    audit_emitter = audit_emitter or LoggingShareAuditEmitter()
    controller = ShareAccessController(share_repo, storage, settings, audit_emitter)

    deps = AppDependencies(
        share_repo=share_repo,
        session_store=session_store,
        storage=storage,
        audit_emitter=audit_emitter,
        controller=controller,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("filevault_startup", environment=settings.environment)
        yield
        logger.info("filevault_shutdown")

    app = FastAPI(
        title="filevault",
        description="File storage API with share links",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestID -> Metrics -> Logging -> CORS -> AuthGuard

    app.add_middleware(AuthGuardMiddleware, session_store=session_store)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_share_router(controller))
    app.include_router(create_share_access_router(controller))

    return app


# For uvicorn, use --factory flag:
#   uvicorn filevault.app:create_app --factory
# This avoids executing create_app() at import time.
