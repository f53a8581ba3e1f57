"""SQLAlchemy engine, session factory and the request-scoped session dependency."""

from __future__ import annotations

from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..core.config import settings

# ``Base`` is the parent class for every SQLAlchemy model defined in toolcrib/models.
Base = declarative_base()


def make_engine(url: str, **kwargs) -> Engine:
    """Create an engine, letting SQLite connections cross FastAPI worker threads."""

    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    connect_args.update(kwargs.pop("connect_args", {}))
    return create_engine(url, connect_args=connect_args, **kwargs)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


# Default engine for the running service. Tests build their own and hand it to
# ``create_app`` instead.
engine = make_engine(settings.database_url)
SessionLocal = make_session_factory(engine)


def get_db(request: Request) -> Iterator[Session]:
    """FastAPI dependency that yields a session and guarantees cleanup."""

    factory = getattr(request.app.state, "session_factory", None) or SessionLocal
    db = factory()
    try:
        yield db
    finally:
        db.close()
