from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import OperationalError

from recordstore.api.errors import register_error_handlers
from recordstore.api.middleware import AccessLogMiddleware, RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from recordstore.api.routers import health, posts, users
from recordstore.core.settings import Settings
from recordstore.db.base import Base
from recordstore.db.models import User
from recordstore.db.session import create_engine_and_sessionmaker
from recordstore.services.associations import AssociationIndex
from recordstore.services.collections import build_default_registry
from recordstore.services.db_log_handler import DBLogHandler
from recordstore.services.record_store import RecordStore
from recordstore.services.resource_handler import ResourceHandler

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting recordstore app...")

        app.state.settings = settings

        # --- DB ---
        db_rt = create_engine_and_sessionmaker(settings.database_url, echo=settings.db_echo)
        app.state.db_engine = db_rt.engine
        app.state.db_sessionmaker = db_rt.SessionLocal
        if settings.auto_create_db:
            Base.metadata.create_all(bind=db_rt.engine)

        with db_rt.SessionLocal() as db:
            try:
                db.query(User.id).first()
            except OperationalError as e:
                raise RuntimeError(
                    "Database schema not initialized. Run `alembic upgrade head` (or set AUTO_CREATE_DB=1 for dev)."
                ) from e

        # --- Record store / associations / handlers ---
        registry = build_default_registry()
        store = RecordStore(registry)
        assoc = AssociationIndex(store)
        app.state.record_store = store
        app.state.association_index = assoc
        app.state.resource_handlers = {
            name: ResourceHandler(
                store,
                name,
                associations=assoc,
                default_limit=settings.default_page_limit,
                max_limit=settings.max_page_limit,
            )
            for name in registry.names()
        }

        # --- DB log handler (WARNING+) ---
        db_handler = None
        if settings.log_to_db:
            db_handler = DBLogHandler(db_rt.SessionLocal)
            db_handler.setLevel(logging.WARNING)
            logging.getLogger("recordstore").addHandler(db_handler)

        try:
            yield
        finally:
            logger.info("Shutting down recordstore app...")
            if db_handler is not None:
                logging.getLogger("recordstore").removeHandler(db_handler)
            app.state.db_engine.dispose()
            logger.info("recordstore app shutdown complete.")

    is_dev = settings.env.lower() in ("dev", "development", "local")
    app = FastAPI(
        title="recordstore",
        lifespan=lifespan,
        docs_url="/docs" if is_dev else None,
        redoc_url="/redoc" if is_dev else None,
        openapi_url="/openapi.json" if is_dev else None,
    )

    # Middleware
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(AccessLogMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins or [],
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    register_error_handlers(app)

    # Routers
    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(posts.router)

    return app
