"""
Service Container
=================

Purpose
-------
Builds every economy service once, in dependency order, and hands out the
shared instances.

Responsibilities
----------------
- Construct LedgerRecorder -> AccountMutator -> engines
- Share one retry policy and one clock across services
- Expose services as properties that fail loudly before ``initialize()``
- Drain background event listeners on shutdown

Non-Responsibilities
--------------------
- Starting the database (``initialize_database_subsystem``)
- Loading configuration (``ConfigManager.from_directory``)

``create_application`` does both and returns a ready container; tests build
the pieces themselves.
"""

from __future__ import annotations

import time
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, TypeVar

from ledgerquest.core.clock import SystemClock, resolve_timezone
from ledgerquest.core.config.manager import ConfigManager
from ledgerquest.core.database.bootstrap import (
    create_retry_policy,
    initialize_database_subsystem,
    shutdown_database_subsystem,
)
from ledgerquest.core.event.bus import EventBus
from ledgerquest.core.logging.logger import get_logger, get_logging_health
from ledgerquest.modules.account import AccountMutator, AccountService, LedgerRecorder
from ledgerquest.modules.daily import DailyRewardService
from ledgerquest.modules.quest import GameplayEventRouter, QuestCatalog, QuestService
from ledgerquest.modules.security import SecurityRewardService
from ledgerquest.modules.shop import ShopService

if TYPE_CHECKING:
    from logging import Logger

    from ledgerquest.core.clock import Clock
    from ledgerquest.core.database.retry_policy import DatabaseRetryPolicy

logger = get_logger(__name__)

S = TypeVar("S")


class ServiceContainer:
    """
    Usage:
        container = ServiceContainer(config_manager, event_bus)
        await container.initialize()
        await container.daily.claim("acct-1")
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
        *,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger or get_logger(__name__)
        self._retry_policy = retry_policy
        self._clock = clock or SystemClock(
            resolve_timezone(config_manager.get("economy.canonical_timezone", "UTC"))
        )

        self._ledger: Optional[LedgerRecorder] = None
        self._mutator: Optional[AccountMutator] = None
        self._accounts: Optional[AccountService] = None
        self._daily: Optional[DailyRewardService] = None
        self._quests: Optional[QuestService] = None
        self._gameplay: Optional[GameplayEventRouter] = None
        self._security: Optional[SecurityRewardService] = None
        self._shop: Optional[ShopService] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        start = time.perf_counter()
        common = {"retry_policy": self._retry_policy, "clock": self._clock}

        self._ledger = self._timed(
            "ledger",
            lambda: LedgerRecorder(
                self._config_manager,
                self._event_bus,
                get_logger("ledgerquest.modules.account.ledger.LedgerRecorder"),
            ),
        )
        ledger = self._ledger
        self._mutator = self._timed(
            "mutator",
            lambda: AccountMutator(
                self._config_manager,
                self._event_bus,
                get_logger("ledgerquest.modules.account.mutator.AccountMutator"),
                ledger,
                **common,
            ),
        )
        mutator = self._mutator

        self._accounts = self._timed(
            "accounts",
            lambda: AccountService(
                self._config_manager,
                self._event_bus,
                get_logger("ledgerquest.modules.account.service.AccountService"),
                mutator,
                **common,
            ),
        )
        self._daily = self._timed(
            "daily",
            lambda: DailyRewardService(
                self._config_manager,
                self._event_bus,
                get_logger("ledgerquest.modules.daily.reward_service.DailyRewardService"),
                mutator,
                **common,
            ),
        )
        self._quests = self._timed(
            "quests",
            lambda: QuestService(
                self._config_manager,
                self._event_bus,
                get_logger("ledgerquest.modules.quest.service.QuestService"),
                mutator,
                catalog=QuestCatalog.from_config(self._config_manager),
                **common,
            ),
        )
        quests = self._quests
        self._gameplay = self._timed("gameplay", lambda: GameplayEventRouter(quests))
        self._security = self._timed(
            "security",
            lambda: SecurityRewardService(
                self._config_manager,
                self._event_bus,
                get_logger("ledgerquest.modules.security.service.SecurityRewardService"),
                mutator,
                **common,
            ),
        )
        self._shop = self._timed(
            "shop",
            lambda: ShopService(
                self._config_manager,
                self._event_bus,
                get_logger("ledgerquest.modules.shop.service.ShopService"),
                mutator,
            ),
        )

        self._initialized = True
        self._logger.info(
            "Service container initialized",
            extra={
                "service_count": len(self._service_init_times),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                "config_version": self._config_manager.version,
            },
        )

    def _timed(self, name: str, factory: Any) -> Any:
        start = time.perf_counter()
        service = factory()
        self._service_init_times[name] = time.perf_counter() - start
        return service

    async def shutdown(self) -> None:
        """Wait for background listeners; services hold no other resources."""
        await self._event_bus.drain()
        self._initialized = False
        self._logger.info("Service container shut down")

    def get_health(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "services": sorted(self._service_init_times),
            "init_times_ms": {
                name: round(seconds * 1000, 3)
                for name, seconds in self._service_init_times.items()
            },
            "config_version": self._config_manager.version,
            "events": self._event_bus.get_metrics_summary(),
            "logging": asdict(get_logging_health()),
        }

    # ========================================================================
    # Accessors
    # ========================================================================

    def _require(self, service: Optional[S], name: str) -> S:
        if service is None:
            raise RuntimeError(f"ServiceContainer not initialized: {name} unavailable")
        return service

    @property
    def config(self) -> ConfigManager:
        return self._config_manager

    @property
    def events(self) -> EventBus:
        return self._event_bus

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def ledger(self) -> LedgerRecorder:
        return self._require(self._ledger, "ledger")

    @property
    def mutator(self) -> AccountMutator:
        return self._require(self._mutator, "mutator")

    @property
    def accounts(self) -> AccountService:
        return self._require(self._accounts, "accounts")

    @property
    def daily(self) -> DailyRewardService:
        return self._require(self._daily, "daily")

    @property
    def quests(self) -> QuestService:
        return self._require(self._quests, "quests")

    @property
    def gameplay(self) -> GameplayEventRouter:
        return self._require(self._gameplay, "gameplay")

    @property
    def security(self) -> SecurityRewardService:
        return self._require(self._security, "security")

    @property
    def shop(self) -> ShopService:
        return self._require(self._shop, "shop")


async def create_application(
    *,
    config_dir: Optional[Path] = None,
    database_url: Optional[str] = None,
    create_schema: bool = False,
    clock: Optional[Clock] = None,
) -> ServiceContainer:
    """
    Start the database, load tunables and return an initialized container.

    Pair with ``shutdown_application``.
    """
    config_manager = ConfigManager.from_directory(config_dir)
    await initialize_database_subsystem(url=database_url, create_schema=create_schema)

    container = ServiceContainer(
        config_manager,
        EventBus(config_manager),
        retry_policy=create_retry_policy(),
        clock=clock,
    )
    await container.initialize()
    return container


async def shutdown_application(container: ServiceContainer) -> None:
    await container.shutdown()
    await shutdown_database_subsystem()
