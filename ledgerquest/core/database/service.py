"""
Database Service - Core Infrastructure Layer

Purpose
-------
Centralized async database engine and session management for LedgerQuest.
Every balance mutation, reward claim and quest update runs inside one
``get_transaction()`` block so eligibility checks, state updates and ledger
writes commit or roll back together.

Responsibilities
----------------
- Initialize and manage a single AsyncEngine instance.
- Provide async context managers for read-only sessions and atomic transactions.
- Enforce transaction discipline: commit on success, rollback on exception
  or cancellation.
- Serialize writers: ``SELECT ... FOR UPDATE`` on PostgreSQL, ``BEGIN
  IMMEDIATE`` on SQLite (which has no row locks).
- Translate driver failures into ``StorageUnavailableError`` and feed them to
  the circuit breaker.
- Run after-commit callbacks (event publication) once the data is durable.

Non-Responsibilities
--------------------
- Retry policies (handled by DatabaseRetryPolicy).
- Domain logic or business rules.

Configuration
-------------
- DATABASE_URL (default: SQLite file via aiosqlite)
- DATABASE_POOL_SIZE / DATABASE_MAX_OVERFLOW / DATABASE_POOL_RECYCLE /
  DATABASE_POOL_TIMEOUT
- DATABASE_STATEMENT_TIMEOUT_MS (PostgreSQL only)
- DATABASE_SQLITE_BUSY_TIMEOUT_S (SQLite only)
- DATABASE_ECHO

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
>>>     account = await session.get(Account, account_id, with_for_update=True)
>>>     account.coins += 50
>>>     # Automatic commit on exit

>>> async with DatabaseService.get_session() as session:
>>>     result = await session.execute(select(Account).where(Account.id == account_id))
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager, contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Awaitable, Callable, Iterator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from ledgerquest.core.config.config import Config
from ledgerquest.core.database.base import Base
from ledgerquest.core.database.circuit_breaker import CircuitBreaker
from ledgerquest.core.exceptions import CircuitBreakerOpenError, StorageUnavailableError
from ledgerquest.core.logging.logger import get_logger

logger = get_logger(__name__)

AfterCommitCallback = Callable[[], Awaitable[None]]

_AFTER_COMMIT_KEY = "ledgerquest.after_commit"


@dataclass
class CommitScope:
    """
    Commit bookkeeping for one unit of work.

    While a scope is active, ``get_transaction`` hands after-commit callbacks
    to the scope instead of running them, so the owner can publish them
    outside its deadline. ``commit_started`` tells the owner that the data
    may already be durable and the unit must not be cancelled.
    """

    callbacks: list[AfterCommitCallback] = field(default_factory=list)
    committing: bool = False
    committed: int = 0

    @property
    def commit_started(self) -> bool:
        return self.committing or self.committed > 0


_commit_scope: ContextVar[Optional[CommitScope]] = ContextVar(
    "ledgerquest_commit_scope", default=None
)


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """Immutable snapshot of database configuration for the engine's lifetime."""

    url: str
    echo: bool
    use_null_pool: bool
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int
    sqlite_busy_timeout_s: int

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


def _install_sqlite_locking(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    pysqlite's implicit BEGIN is disabled and replaced by ``BEGIN IMMEDIATE``,
    so two writers never both read a balance before either writes it.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class DatabaseService:
    """
    Centralized async database engine and session management.

    Public API
    ----------
    **Lifecycle**: initialize(), shutdown(), create_schema(), drop_schema()

    **Sessions**: get_session() for reads, get_transaction() for writes

    **Utilities**: health_check(), after_commit(), defer_after_commit(),
    get_circuit_breaker_metrics()
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _config_snapshot: Optional[_DatabaseConfigSnapshot] = None
    _init_lock: Optional[asyncio.Lock] = None
    _circuit_breaker: Optional[CircuitBreaker] = None

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _lock(cls) -> asyncio.Lock:
        # Created lazily so the lock binds to the running loop.
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()
        return cls._init_lock

    @classmethod
    def _build_config_snapshot(cls, url: Optional[str]) -> _DatabaseConfigSnapshot:
        database_url = url or Config.DATABASE_URL
        if not database_url or not isinstance(database_url, str):
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        is_sqlite = database_url.startswith("sqlite")
        snapshot = _DatabaseConfigSnapshot(
            url=database_url,
            echo=Config.DATABASE_ECHO,
            use_null_pool=Config.is_testing() or is_sqlite,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
            sqlite_busy_timeout_s=Config.DATABASE_SQLITE_BUSY_TIMEOUT_S,
        )

        logger.debug(
            "Database configuration snapshot created",
            extra={
                "url_scheme": snapshot.url_scheme,
                "null_pool": snapshot.use_null_pool,
                "pool_size": snapshot.pool_size,
                "statement_timeout_ms": snapshot.statement_timeout_ms,
            },
        )
        return snapshot

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the database engine and session factory.

        Idempotent. ``url`` overrides ``Config.DATABASE_URL`` (tests use it to
        point each run at a fresh database).

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with cls._lock():
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            try:
                config = cls._build_config_snapshot(url)

                engine_kwargs: dict[str, Any] = {"echo": config.echo}
                if config.use_null_pool:
                    engine_kwargs["poolclass"] = NullPool
                else:
                    engine_kwargs.update(
                        {
                            "pool_size": config.pool_size,
                            "max_overflow": config.max_overflow,
                            "pool_recycle": config.pool_recycle,
                            "pool_timeout": config.pool_timeout,
                            "pool_pre_ping": True,
                        }
                    )
                if config.is_sqlite:
                    engine_kwargs["connect_args"] = {
                        "timeout": config.sqlite_busy_timeout_s,
                    }

                engine = create_async_engine(config.url, **engine_kwargs)
                if config.is_sqlite:
                    _install_sqlite_locking(engine)

                cls._engine = engine
                cls._config_snapshot = config
                cls._session_factory = async_sessionmaker(
                    bind=engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )
                cls._circuit_breaker = CircuitBreaker()

                logger.info(
                    "DatabaseService initialized",
                    extra={
                        "url_scheme": config.url_scheme,
                        "null_pool": config.use_null_pool,
                    },
                )

            except DatabaseInitializationError:
                raise
            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

    @classmethod
    async def shutdown(cls) -> None:
        """Dispose the engine and reset internal state. Safe to call twice."""
        async with cls._lock():
            if cls._engine is None:
                return

            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None
                cls._circuit_breaker = None

    @classmethod
    async def create_schema(cls) -> None:
        """Create all tables registered on ``Base.metadata``."""
        cls._ensure_initialized()
        assert cls._engine is not None
        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @classmethod
    async def drop_schema(cls) -> None:
        cls._ensure_initialized()
        assert cls._engine is not None
        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    # ========================================================================
    # Health Check
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """Run ``SELECT 1``; returns False instead of raising on storage errors."""
        if cls._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (OperationalError, DBAPIError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False
        finally:
            logger.debug(
                "Database health check completed",
                extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
            )

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    @classmethod
    def _ensure_initialized(cls) -> None:
        if cls._session_factory is None or cls._engine is None:
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call DatabaseService.initialize() during startup."
            )

    @classmethod
    def _get_config_snapshot(cls) -> _DatabaseConfigSnapshot:
        if cls._config_snapshot is None:
            raise DatabaseNotInitializedError("DatabaseService is not initialized")
        return cls._config_snapshot

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a session without automatic commit, for read-only work.

        Driver errors surface as ``StorageUnavailableError``.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        async with cls._session_factory() as session:
            try:
                yield session
            except (OperationalError, DBAPIError) as exc:
                if isinstance(exc, IntegrityError):
                    raise
                raise StorageUnavailableError("read", exc) from exc

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a session wrapped in an atomic transaction.

        Behavior
        --------
        **On success**: commits, records success on the circuit breaker, then
        runs callbacks registered with ``after_commit``. Inside
        ``defer_after_commit`` the callbacks go to the active scope instead.

        **On exception or cancellation**: rolls back and discards callbacks.
        Driver failures are re-raised as ``StorageUnavailableError`` and
        counted by the circuit breaker. ``IntegrityError`` and domain
        exceptions propagate unchanged.

        Raises
        ------
        CircuitBreakerOpenError
            If the breaker is rejecting requests.
        StorageUnavailableError
            For connection, lock-timeout or other operational failures.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None
        assert cls._circuit_breaker is not None

        breaker = cls._circuit_breaker
        if not await breaker.allow_request():
            logger.warning("Transaction rejected by circuit breaker (fail-fast)")
            raise CircuitBreakerOpenError(breaker.name, breaker.retry_after())

        scope = _commit_scope.get()
        start = time.perf_counter()
        async with cls._session_factory() as session:
            config = cls._get_config_snapshot()
            callbacks: list[AfterCommitCallback] = []
            session.info[_AFTER_COMMIT_KEY] = callbacks

            try:
                if config.is_postgres:
                    await session.execute(
                        text(
                            f"SET LOCAL statement_timeout = "
                            f"{config.statement_timeout_ms}"
                        )
                    )

                yield session

                if scope is None:
                    await session.commit()
                else:
                    scope.committing = True
                    try:
                        await session.commit()
                    finally:
                        scope.committing = False
                    scope.committed += 1
                    scope.callbacks.extend(callbacks)
                    callbacks = []
                await breaker.record_success()
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

            except IntegrityError:
                await session.rollback()
                raise

            except (OperationalError, DBAPIError) as exc:
                await session.rollback()
                await breaker.record_failure()
                logger.error(
                    "Storage error in transaction; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                )
                raise StorageUnavailableError("transaction", exc) from exc

            except BaseException:
                # Domain errors and cancellation: the store is healthy.
                await session.rollback()
                raise

            finally:
                session.info.pop(_AFTER_COMMIT_KEY, None)

        await cls._run_after_commit(callbacks)

    @classmethod
    def after_commit(cls, session: AsyncSession, callback: AfterCommitCallback) -> None:
        """
        Schedule ``callback`` to run once the session's transaction commits.

        Discarded if the transaction rolls back. Outside ``get_transaction``
        the callback is dropped with a warning.
        """
        callbacks = session.info.get(_AFTER_COMMIT_KEY)
        if callbacks is None:
            logger.warning("after_commit registered outside a managed transaction")
            return
        callbacks.append(callback)

    @classmethod
    @contextmanager
    def defer_after_commit(cls) -> Iterator[CommitScope]:
        """Collect after-commit callbacks of the enclosed transactions."""
        scope = CommitScope()
        token = _commit_scope.set(scope)
        try:
            yield scope
        finally:
            _commit_scope.reset(token)

    @classmethod
    async def run_deferred(cls, scope: CommitScope) -> None:
        callbacks, scope.callbacks = scope.callbacks, []
        await cls._run_after_commit(callbacks)

    @staticmethod
    async def _run_after_commit(callbacks: list[AfterCommitCallback]) -> None:
        for callback in callbacks:
            try:
                await callback()
            except Exception:
                logger.error("after_commit callback failed", exc_info=True)

    # ========================================================================
    # Circuit Breaker Metrics
    # ========================================================================

    @classmethod
    def get_circuit_breaker_metrics(cls) -> dict[str, Any]:
        if cls._circuit_breaker is None:
            return {"state": "not_initialized"}

        cb_metrics = cls._circuit_breaker.get_metrics()
        return {
            "state": cb_metrics.state.value,
            "failure_count": cb_metrics.failure_count,
            "success_count": cb_metrics.success_count,
            "consecutive_failures": cb_metrics.consecutive_failures,
            "total_requests": cb_metrics.total_requests,
            "rejected_requests": cb_metrics.rejected_requests,
            "last_failure_time": cb_metrics.last_failure_time,
        }
