"""
Database engine and sessions (SQLAlchemy over psycopg 3).

One engine per process, built lazily from settings. Request handlers get a
session through the get_db dependency; scheduler jobs and the dispatcher CLI
open their own from get_session_factory() and close it when done.
"""
from functools import lru_cache

import psycopg
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from tradeclock.config import get_settings


class Base(DeclarativeBase):
    pass


@lru_cache
def get_engine() -> Engine:
    # pre-ping: the dispatcher holds pooled connections across idle minutes
    return create_engine(get_settings().get_sqlalchemy_url(), pool_pre_ping=True)


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


def get_db():
    """FastAPI dependency: one session per request, closed after the response."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def _libpq_url(url: str) -> str:
    return url.replace("postgresql+psycopg://", "postgresql://", 1)


def check_db_connection() -> None:
    """Used by /ready. Raises psycopg.OperationalError when the database is unreachable."""
    with psycopg.connect(_libpq_url(get_settings().DATABASE_URL), connect_timeout=3) as conn:
        conn.execute("SELECT 1").fetchone()
