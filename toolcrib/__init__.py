"""Application factory and top-level wiring for the Tool Crib service.

``create_app`` is where configuration, the database, the shared
collaborators and the routers meet:

*What:* A FastAPI app serving the catalog, the take/return ledger and the
live change feed.
*When:* Called once by ``toolcrib.main`` at startup, and once per test with a
throwaway in-memory engine.
*Why:* Nothing reads an ambient storage handle or notification hub. Each app
owns its session factory, its notification broker and its per-item locks on
``app.state``, and request handlers receive them through dependencies.
*How:* Create the tables, attach the collaborators, install middleware and
error handlers, then include the routers.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import AppSettings, get_settings
from .core.errors import (
    LedgerError,
    http_exception_handler,
    ledger_error_handler,
    storage_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from .db.session import Base, engine as default_engine, make_session_factory
from .middlewares import RequestIdMiddleware
from .services.locks import ItemLockRegistry
from .services.notifications import NotificationBroker

# Importing the SQLAlchemy models registers them with the metadata. Without
# this step ``Base.metadata.create_all`` would not know about our tables.
from .models import item as _item  # noqa: F401
from .models import ticket as _ticket  # noqa: F401


def create_app(engine: Engine | None = None, settings: AppSettings | None = None) -> FastAPI:
    settings = settings or get_settings()
    engine = engine or default_engine

    app = FastAPI(title=settings.APP_NAME)

    # ---------- Storage ----------
    Base.metadata.create_all(bind=engine)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)

    # ---------- Shared collaborators ----------
    app.state.notifications = NotificationBroker(queue_size=settings.EVENTS_QUEUE_SIZE)
    app.state.item_locks = ItemLockRegistry()

    # ---------- Middleware ----------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    # ---------- Exception handling ----------
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, storage_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ---------- Routers ----------
    from .routers import api_items, api_tickets, events

    app.include_router(api_items.router)
    app.include_router(api_tickets.router)
    app.include_router(events.router)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    return app


__all__ = ["create_app"]
