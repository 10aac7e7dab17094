"""
Database Subsystem Bootstrap

Purpose
-------
Single entry point for starting and stopping the database subsystem.

Bootstrap Sequence
------------------
1. ``initialize_database_subsystem()`` is called during process startup.
2. DatabaseService initializes the engine and session factory.
3. Optionally, the schema is created (development and tests; production
   deployments manage schema out of band).
4. Optional health check verifies connectivity within a timeout.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from ledgerquest.core.database.retry_policy import DatabaseRetryPolicy
from ledgerquest.core.database.service import (
    DatabaseInitializationError,
    DatabaseService,
)
from ledgerquest.core.logging.logger import get_logger

logger = get_logger(__name__)

HEALTH_CHECK_TIMEOUT_SECONDS = 5.0


async def initialize_database_subsystem(
    *,
    url: Optional[str] = None,
    create_schema: bool = False,
    verify_health: bool = True,
) -> None:
    """
    Initialize the database subsystem.

    Parameters
    ----------
    url:
        Overrides ``Config.DATABASE_URL``.
    create_schema:
        Create any missing tables after the engine is up.
    verify_health:
        Run a ``SELECT 1`` probe and fail startup if it does not succeed.

    Raises
    ------
    DatabaseInitializationError
        If the engine cannot be created or the health probe fails.
    """
    # Register every model on Base.metadata before create_all runs.
    import ledgerquest.database.models  # noqa: F401

    await DatabaseService.initialize(url=url)

    if create_schema:
        await DatabaseService.create_schema()
        logger.info("Database schema ensured")

    if not verify_health:
        return

    try:
        healthy = await asyncio.wait_for(
            DatabaseService.health_check(),
            timeout=HEALTH_CHECK_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as exc:
        await DatabaseService.shutdown()
        raise DatabaseInitializationError(
            f"Database health check timed out after {HEALTH_CHECK_TIMEOUT_SECONDS}s"
        ) from exc

    if not healthy:
        await DatabaseService.shutdown()
        raise DatabaseInitializationError("Database health check failed during bootstrap")

    logger.info("Database subsystem ready")


async def shutdown_database_subsystem() -> None:
    await DatabaseService.shutdown()
    logger.info("Database subsystem shut down")


def create_retry_policy() -> DatabaseRetryPolicy:
    """Retry policy configured from ``Config.DATABASE_RETRY_*``."""
    return DatabaseRetryPolicy.from_config()
