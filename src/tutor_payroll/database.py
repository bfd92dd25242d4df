"""Database connection, session and transaction management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import SessionTransactionOrigin
from sqlalchemy.pool import StaticPool

from tutor_payroll.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlalchemy.sql.dml import Insert


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, with SQLite tuned for tests and local runs."""
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {}
        if ":memory:" in url or url.rstrip("/").endswith("aiosqlite:"):
            # one shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(url, echo=echo, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINT and foreign keys behave on SQLite."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by the API, the CLI and tests."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db() -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None or _session_factory is None:
        settings = get_settings()
        _engine = create_engine_for_url(settings.database_url, echo=settings.sql_echo)
        _session_factory = make_session_factory(_engine)
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine (application shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables known to the ORM metadata."""
    from tutor_payroll.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run a block as one committed unit of work.

    A transaction the session autobegan for earlier reads is committed first,
    so the block always runs in its own top-level transaction and commits on
    exit. Only a transaction the caller opened explicitly with ``begin()`` is
    joined, through a SAVEPOINT, and then the caller owns the commit.

    Any exception leaving the block rolls back everything written inside it.
    Rolling back a top-level transaction expires every instance loaded in the
    session: after a failed operation, re-read rows (``session.refresh`` or a
    ``populate_existing`` select) before touching their attributes.
    """
    current = session.sync_session.get_transaction()
    if current is not None and current.origin is not SessionTransactionOrigin.AUTOBEGIN:
        async with session.begin_nested():
            yield session
        return

    if current is not None:
        await session.commit()
    async with session.begin():
        yield session


def insert_ignoring_conflicts(
    session: AsyncSession,
    table: Any,
    index_elements: list[str],
    values: dict[str, Any],
) -> Insert:
    """Build INSERT ... ON CONFLICT DO NOTHING for the session's dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Idempotent insert not supported on {dialect}")

    return insert(table).values(**values).on_conflict_do_nothing(index_elements=index_elements)
