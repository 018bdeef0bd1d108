"""
database.py - Engine and session management (SQLAlchemy 2.x, sync).
"""

from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from geo_assign.models import Base

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_session_factory() -> sessionmaker[Session]:
    """Return the current session factory.

    Raises:
        RuntimeError: If the engine has not been initialized.
    """
    if _session_factory is None:
        msg = "Session factory not initialized. Call init_engine() first."
        raise RuntimeError(msg)
    return _session_factory


def init_engine(database_url: str, **kwargs: object) -> Engine:
    """Create and store the engine and session factory, creating tables.

    An in-memory SQLite URL is pinned to a single shared connection so that
    request threads and background tasks see the same database.

    Args:
        database_url: SQLAlchemy connection string.
        **kwargs: Additional arguments passed to create_engine.

    Returns:
        The created engine.
    """
    global _engine, _session_factory  # noqa: PLW0603
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        if not isinstance(connect_args, dict):
            msg = "connect_args must be a dict"
            raise TypeError(msg)
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs.setdefault("poolclass", StaticPool)

    _engine = create_engine(database_url, **kwargs)
    _session_factory = sessionmaker(_engine, expire_on_commit=False)
    Base.metadata.create_all(_engine)
    return _engine


def dispose_engine() -> None:
    """Dispose of the engine and release connections."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding a session bound to the current engine."""
    with get_session_factory()() as session:
        yield session
