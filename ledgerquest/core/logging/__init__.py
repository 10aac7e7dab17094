"""
LedgerQuest logging infrastructure.

Structured JSON logging, ContextVar-based ``LogContext`` and setup/teardown
helpers for the global logging stack.
"""

from ledgerquest.core.logging.logger import (
    LogContext,
    LoggerConfig,
    current_correlation_id,
    get_logger,
    get_logging_health,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "get_logging_health",
    "LogContext",
    "current_correlation_id",
    "LoggerConfig",
]
