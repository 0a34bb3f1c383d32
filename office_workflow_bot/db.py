"""Database engine, session scope and schema helpers for the document store."""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
import structlog

from office_workflow_bot.config import get_settings

Base = declarative_base()


def _engine_options(database_url: str) -> Dict[str, Any]:
    if make_url(database_url).get_backend_name() == "sqlite":
        # Sessions are opened from the background pool as well as request threads.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


@lru_cache()
def get_engine() -> Engine:
    """Create or return the cached engine for ``DATABASE_URL``."""

    database_url = get_settings().database_url
    return create_engine(database_url, future=True, echo=False, **_engine_options(database_url))


@lru_cache()
def get_session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=False, future=True)


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success, roll back and re-raise on any error."""

    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        structlog.get_logger().debug("session_rolled_back", error_type=type(exc).__name__)
        raise
    finally:
        session.close()


def create_schema() -> None:
    """Create all tables known to the metadata."""

    # Registers the mapped classes on ``Base``.
    from office_workflow_bot import models  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_schema() -> None:
    from office_workflow_bot import models  # noqa: F401

    Base.metadata.drop_all(get_engine())
