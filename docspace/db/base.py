"""
DocSpace Database Base — SQLAlchemy declarative base, mixins and engine factory.

Provides:
- Base: SQLAlchemy declarative base for all models
- TimestampMixin: created_at, updated_at
- create_engine_from_config(): async engine with per-dialect connection setup
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict

from sqlalchemy import Column, DateTime, event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

if TYPE_CHECKING:
    from docspace.engine.config import DatabaseConfig


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all DocSpace models."""
    pass


class TimestampMixin:
    """Adds created_at and updated_at columns."""
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


def create_engine_from_config(config: DatabaseConfig) -> AsyncEngine:
    """
    Build the async engine for the metadata database.

    SQLite gets ``PRAGMA foreign_keys=ON`` on every connection so that the
    ``ON DELETE CASCADE`` clauses on Folder/File/Share rows are enforced the
    same way PostgreSQL enforces them.
    """
    kwargs: Dict[str, Any] = {"echo": config.echo}
    is_sqlite = config.url.startswith("sqlite")
    if not is_sqlite:
        kwargs.update(
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_recycle=config.pool_recycle,
            pool_pre_ping=config.pool_pre_ping,
        )

    engine = create_async_engine(config.url, **kwargs)

    if is_sqlite:
        @event.listens_for(engine.sync_engine, "connect")
        def enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine
