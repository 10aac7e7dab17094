"""
Pytest Configuration and Fixtures for LedgerQuest Tests
=======================================================

Purpose
-------
Shared fixtures for the unit and integration suites.

Responsibilities
----------------
- Force the testing environment before any ``ledgerquest`` import
- Provide the real YAML tunables, a fresh EventBus and a pinned clock
- Start a real database per integration test:
  * default: a SQLite file under ``tmp_path`` (aiosqlite, BEGIN IMMEDIATE)
  * ``LEDGERQUEST_TEST_BACKEND=postgres``: a PostgreSQL testcontainer
- Build a fully wired ServiceContainer on top of that database
- Mock fixtures for unit tests that never touch storage

Architecture Notes
------------------
- Unit tests use mocks and pure functions (fast, isolated)
- Integration tests run the services against a real database; each test
  gets an empty schema
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DATABASE_SQLITE_BUSY_TIMEOUT_S", "30")

from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, Generator, Optional

import pytest
import pytest_asyncio

from ledgerquest.core.clock import FixedClock
from ledgerquest.core.config.manager import ConfigManager
from ledgerquest.core.database import (
    DatabaseRetryConfig,
    DatabaseRetryPolicy,
    DatabaseService,
    initialize_database_subsystem,
    shutdown_database_subsystem,
)
from ledgerquest.core.event.bus import EventBus
from ledgerquest.core.logging.logger import get_logger
from ledgerquest.services.container import ServiceContainer

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = PROJECT_ROOT / "config"

# Tuesday noon UTC; far from any day boundary.
START_TIME = datetime(2025, 3, 11, 12, 0, tzinfo=timezone.utc)

USE_POSTGRES = os.getenv("LEDGERQUEST_TEST_BACKEND", "sqlite").lower() == "postgres"


# ============================================================================
# CONFIG / EVENTS / CLOCK
# ============================================================================


@pytest.fixture
def config_manager() -> ConfigManager:
    """The repository's YAML tunables (fresh instance per test)."""
    return ConfigManager.from_directory(CONFIG_DIR)


@pytest.fixture
def event_bus(config_manager: ConfigManager) -> EventBus:
    return EventBus(config_manager)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START_TIME)


@pytest.fixture
def retry_policy() -> DatabaseRetryPolicy:
    """Fast retries so storage-failure tests do not sleep."""
    return DatabaseRetryPolicy(
        DatabaseRetryConfig(
            max_attempts=3,
            initial_backoff_ms=1,
            max_backoff_ms=5,
            jitter_ms=0,
        )
    )


# ============================================================================
# DATABASE (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_url() -> Generator[Optional[str], None, None]:
    """
    PostgreSQL testcontainer URL, or ``None`` when running on SQLite.

    Scope: session (container persists across all tests)
    """
    if not USE_POSTGRES:
        yield None
        return

    from testcontainers.postgres import PostgresContainer

    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:16-alpine", driver="asyncpg")
    container.start()
    try:
        yield container.get_connection_url()
    finally:
        logger.info("Stopping PostgreSQL testcontainer...")
        container.stop()


@pytest_asyncio.fixture
async def database(tmp_path: Path, postgres_url: Optional[str]) -> AsyncGenerator[str, None]:
    """
    Initialized DatabaseService with an empty schema.

    Scope: function (clean slate per test)
    """
    url = postgres_url or f"sqlite+aiosqlite:///{tmp_path / 'ledgerquest.db'}"
    await initialize_database_subsystem(url=url, create_schema=True)
    try:
        yield url
    finally:
        if postgres_url:
            await DatabaseService.drop_schema()
        await shutdown_database_subsystem()


@pytest_asyncio.fixture
async def container(
    database: str,
    config_manager: ConfigManager,
    event_bus: EventBus,
    clock: FixedClock,
    retry_policy: DatabaseRetryPolicy,
) -> AsyncGenerator[ServiceContainer, None]:
    services = ServiceContainer(
        config_manager,
        event_bus,
        retry_policy=retry_policy,
        clock=clock,
    )
    await services.initialize()
    try:
        yield services
    finally:
        await services.shutdown()


@pytest_asyncio.fixture
async def account_id(container: ServiceContainer) -> str:
    """A registered account with a zero balance."""
    view = await container.accounts.register("player-1")
    return view.account_id


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.drain = mocker.AsyncMock()
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


@pytest.fixture
def mock_config_manager(mocker):
    """ConfigManager stand-in that returns the caller's default."""
    mock_config = mocker.MagicMock()
    mock_config.get = mocker.MagicMock(side_effect=lambda key, default=None: default)
    mock_config.version = 1
    return mock_config


# ============================================================================
# EVENT RECORDING
# ============================================================================


@pytest.fixture
def record_events(event_bus: EventBus):
    """
    Subscribe a NORMAL-priority recorder; returns the list of payloads it sees.

    Usage:
        claimed = record_events("quest.claimed")
        ...
        assert claimed[0]["reward"] == 80
    """

    def _subscribe(event_name: str) -> list:
        seen: list = []

        async def _record(payload):
            seen.append(dict(payload))

        event_bus.subscribe(event_name, _record, identifier=f"test-recorder@{event_name}")
        return seen

    return _subscribe
