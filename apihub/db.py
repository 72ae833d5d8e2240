"""Engine and thread-scoped session for the collaborator modules.

The app factory calls ``init_engine`` with ``database.url``; a later call with a
different URL (tests, CLI) swaps the engine. Request handlers use
``get_session``; the factory removes the scoped session on app-context teardown.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from .models import Base

_engine: Engine | None = None
_sessions: scoped_session[Session] | None = None

_PG_DRIVER = "postgresql+psycopg://"


def _normalize_url(url: str) -> str:
    # bare postgres URLs would default to psycopg2; the postgres extra ships psycopg v3
    scheme, sep, rest = url.partition("://")
    if scheme == "postgres" or (scheme == "postgresql" and sep):
        return _PG_DRIVER + rest
    return url


def init_engine(database_url: str) -> Engine:
    global _engine, _sessions
    url = _normalize_url(database_url)
    if _engine is not None:
        if _engine.url.render_as_string(hide_password=False) == url:
            return _engine
        if _sessions is not None:
            _sessions.remove()
        _engine.dispose()
    _engine = create_engine(url, future=True, echo=False)
    _sessions = scoped_session(sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False))
    return _engine


def get_session() -> Session:
    if _sessions is None:
        raise RuntimeError("DB not initialized; call init_engine first")
    return _sessions()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on success, roll back on error, always release the scoped session."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        remove_session()


def remove_session() -> None:
    if _sessions is not None:
        _sessions.remove()


def create_all() -> None:
    if _engine is None:
        raise RuntimeError("Engine not initialized")
    Base.metadata.create_all(_engine)


__all__ = ["create_all", "get_session", "init_engine", "remove_session", "session_scope"]
