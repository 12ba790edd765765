"""Database bootstrap helpers."""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


def build_session_factory(dsn: str) -> sessionmaker:
    """Create one engine for the process and return its session factory."""

    if dsn.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads.
        engine = create_engine(dsn, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        engine = create_engine(dsn, pool_pre_ping=True)
    # `expire_on_commit=False` keeps ORM objects readable after commit in handlers.
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
