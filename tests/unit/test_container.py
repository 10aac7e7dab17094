"""Unit tests for ServiceContainer wiring (no database access)."""

import pytest

from ledgerquest.services.container import ServiceContainer


async def test_services_unavailable_before_initialize(config_manager, event_bus):
    container = ServiceContainer(config_manager, event_bus)
    with pytest.raises(RuntimeError):
        container.daily


async def test_initialize_wires_every_service(config_manager, event_bus, clock):
    container = ServiceContainer(config_manager, event_bus, clock=clock)
    await container.initialize()

    health = container.get_health()
    assert health["initialized"]
    assert health["services"] == sorted(
        ["accounts", "daily", "gameplay", "ledger", "mutator", "quests", "security", "shop"]
    )
    assert container.quests.catalog.batch_size == 4
    assert container.daily.clock is clock
    assert health["logging"]["records_dropped"] >= 0
    assert "queue_max_size" in health["logging"]

    await container.shutdown()
    assert not container.get_health()["initialized"]
