"""
Database configuration and session management
Async SQLAlchemy engine, declarative Base, shared column mixins and the
request-scoped session dependency.
Reference: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""
import logging
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import DateTime, JSON, event, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, with_loader_criteria
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from app.core.config import settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime that always hands back UTC datetimes.

    PostgreSQL returns aware values for TIMESTAMPTZ, SQLite returns naive ones.
    Normalizing here keeps comparisons like `locked_until > utcnow()` valid on both.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# JSON column: JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models"""
    pass


class TimestampMixin:
    """
    created_at / updated_at columns.

    Python-side defaults are used so values are available right after flush
    without an extra round trip (lazy refreshes are not allowed in async sessions).
    """
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class SoftDeleteMixin:
    """
    Nullable deletion timestamp.

    Rows with deleted_at set are hidden from every ORM SELECT by the
    session-level filter below. Pass execution_options(include_deleted=True)
    to see them (restore, uniqueness checks, admin purge).
    """
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
        index=True,
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self, when: Optional[datetime] = None) -> None:
        self.deleted_at = when or utcnow()


@event.listens_for(Session, "do_orm_execute")
def _filter_soft_deleted(execute_state) -> None:
    """
    Apply the soft-delete predicate to every ORM SELECT.
    Reference: https://docs.sqlalchemy.org/en/20/orm/queryguide/api.html#sqlalchemy.orm.with_loader_criteria
    """
    if (
        execute_state.is_select
        and not execute_state.is_column_load
        and not execute_state.is_relationship_load
        and not execute_state.execution_options.get("include_deleted", False)
    ):
        execute_state.statement = execute_state.statement.options(
            with_loader_criteria(
                SoftDeleteMixin,
                lambda cls: cls.deleted_at.is_(None),
                include_aliases=True,
            )
        )


def _engine_kwargs(url: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            # One shared connection so every session sees the same in-memory database
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = max(1, settings.DB_POOL_SIZE)
        kwargs["max_overflow"] = max(0, settings.DB_MAX_OVERFLOW)
        kwargs["pool_recycle"] = 1800
    return kwargs


def create_engine_for_url(url: str):
    """
    Build the async engine for a database URL.

    SQLite connections get foreign key enforcement switched on so ON DELETE
    CASCADE / SET NULL behave as they do on PostgreSQL.
    """
    async_engine = create_async_engine(url, **_engine_kwargs(url))
    if url.startswith("sqlite"):
        @event.listens_for(async_engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    return async_engine


engine = create_engine_for_url(settings.database_url)

# expire_on_commit=False keeps loaded attributes usable after commit in async handlers
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that yields one AsyncSession per request.

    Services only flush; route handlers commit. Anything left uncommitted
    when the request fails is rolled back here.
    Reference: https://fastapi.tiangolo.com/tutorial/dependencies/dependencies-with-yield/
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
