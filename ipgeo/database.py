from collections.abc import Iterator
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from ipgeo.config import get_settings
from ipgeo.logger import logger


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str) -> Engine:
    """Create an engine for ``database_url``.

    SQLite connections may be used from threadpool workers other than the one
    that opened them.
    """
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    # Model modules register their tables on Base.metadata when imported.
    from ipgeo.models import db_models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Database schema ready url={target.url.render_as_string(hide_password=True)}")


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding a session that is closed after the request."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
