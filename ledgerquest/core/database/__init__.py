"""
Database subsystem for LedgerQuest.

Provides the async SQLAlchemy engine, transaction management, retry policy
and circuit breaker, plus the ORM base classes used by model definitions.
"""

from ledgerquest.core.database.base import Base, IdMixin, TimestampMixin, utc_now
from ledgerquest.core.database.bootstrap import (
    create_retry_policy,
    initialize_database_subsystem,
    shutdown_database_subsystem,
)
from ledgerquest.core.database.circuit_breaker import CircuitBreaker, CircuitState
from ledgerquest.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from ledgerquest.core.database.service import (
    CommitScope,
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    # Main service
    "DatabaseService",
    "CommitScope",
    # Bootstrap
    "initialize_database_subsystem",
    "shutdown_database_subsystem",
    "create_retry_policy",
    # Resilience
    "CircuitBreaker",
    "CircuitState",
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
