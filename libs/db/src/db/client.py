"""Engines and sessions for the transfer-log mirror.

Callers name the database explicitly (``--database-url`` on the CLI, or the
``database_url`` a ``SqlTransferSource`` was built with) or fall back to
``DATABASE_URL``. One engine is kept per URL for the life of the process.

Transfer fetches run on ``pmap`` worker threads, so SQLite engines are built
with ``check_same_thread=False``.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_lock = threading.Lock()
_engines: dict[str, tuple[Engine, sessionmaker[Session]]] = {}


def _resolve_url(database_url: str | None) -> str:
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("no database URL: pass database_url or set DATABASE_URL")
    return url


def _entry(database_url: str | None) -> tuple[Engine, sessionmaker[Session]]:
    url = _resolve_url(database_url)
    with _lock:
        entry = _engines.get(url)
        if entry is None:
            connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
            engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
            entry = (engine, sessionmaker(bind=engine, expire_on_commit=False))
            _engines[url] = entry
        return entry


def get_engine(*, database_url: str | None = None) -> Engine:
    return _entry(database_url)[0]


def reset_engine() -> None:
    """Dispose every cached engine."""

    with _lock:
        for engine, _ in _engines.values():
            engine.dispose()
        _engines.clear()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Yield a session that commits on success and rolls back on error."""

    session = _entry(database_url)[1]()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = ["get_engine", "reset_engine", "session_scope"]
