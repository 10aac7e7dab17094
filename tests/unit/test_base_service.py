"""
Unit tests for BaseService's unit-of-work envelope.

No database: the ``work`` callables are plain coroutines.
"""

import asyncio

import pytest

from ledgerquest.core.exceptions import StorageUnavailableError, TransactionTimeoutError
from ledgerquest.core.logging.logger import current_correlation_id, get_logger
from ledgerquest.modules.shared.base_service import BaseService
from ledgerquest.modules.shared.exceptions import AlreadyClaimedError


class _Service(BaseService):
    component = "test"


@pytest.fixture
def service(mock_config_manager, mock_event_bus, retry_policy, clock):
    return _Service(
        mock_config_manager,
        mock_event_bus,
        get_logger("tests.base_service"),
        retry_policy=retry_policy,
        clock=clock,
    )


async def test_run_unit_returns_result(service):
    async def work():
        return 42

    assert await service.run_unit("op", work, account_id="a") == 42


async def test_run_unit_retries_storage_errors(service):
    attempts = []

    async def work():
        attempts.append(1)
        if len(attempts) < 2:
            raise StorageUnavailableError("commit")
        return "ok"

    assert await service.run_unit("op", work) == "ok"
    assert len(attempts) == 2


async def test_run_unit_does_not_retry_domain_errors(service):
    attempts = []

    async def work():
        attempts.append(1)
        raise AlreadyClaimedError("daily_reward", 1)

    with pytest.raises(AlreadyClaimedError):
        await service.run_unit("op", work)
    assert len(attempts) == 1


async def test_run_unit_deadline_raises_timeout(service):
    async def work():
        await asyncio.sleep(1)

    with pytest.raises(TransactionTimeoutError) as exc_info:
        await service.run_unit("daily.claim", work, timeout=0.01)
    assert exc_info.value.timeout_seconds == 0.01


async def test_run_unit_scopes_a_correlation_id(service):
    seen = []

    async def work():
        seen.append(current_correlation_id())

    await service.run_unit("op", work)
    assert seen[0]


async def test_emit_event_merges_context(service, mock_event_bus):
    await service.emit_event("quest.claimed", {"reward": 80}, {"account_id": "a"})
    mock_event_bus.publish.assert_awaited_once_with(
        "quest.claimed", {"reward": 80, "account_id": "a"}
    )


def test_get_config_required(service):
    from ledgerquest.core.exceptions import ConfigurationError

    assert service.get_config("economy.max_single_delta", 5) == 5
    with pytest.raises(ConfigurationError):
        service.get_config("economy.missing", required=True)


def test_default_clock_uses_canonical_timezone(mock_config_manager, mock_event_bus):
    from datetime import timezone

    svc = _Service(mock_config_manager, mock_event_bus, get_logger("tests"))
    assert svc.clock.tz is timezone.utc
