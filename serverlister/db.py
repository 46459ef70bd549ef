"""Database bootstrap utilities."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def create_db_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create the SQLAlchemy engine ensuring SQLite files exist.

    The engine connects lazily; nothing touches the database until
    :func:`init_db` or the first session does.
    """

    url: URL = make_url(database_url)
    connect_args: dict[str, Any] = {}

    if url.drivername.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        database = url.database
        if database and database not in {":memory:", ""}:
            db_path = Path(database)
            if not db_path.is_absolute():
                db_path = (PROJECT_ROOT / db_path).resolve()
            db_path.parent.mkdir(parents=True, exist_ok=True)
            url = url.set(database=str(db_path))

    engine_kwargs: dict[str, Any] = {"future": True, "echo": echo}
    if connect_args:
        engine_kwargs["connect_args"] = connect_args
    else:
        # Handlers share the pool across jobs; drop connections the server closed.
        engine_kwargs["pool_pre_ping"] = True

    return create_engine(url, **engine_kwargs)


def init_db(engine: Engine) -> None:
    """Create missing tables, used by development bootstraps."""

    Base.metadata.create_all(engine)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return the session factory shared by request handlers and job handlers."""

    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


__all__ = ["create_db_engine", "create_session_factory", "init_db"]
