"""
QuestService
============

Purpose
-------
Owns each account's daily quest batch: rotation, progress, claim, reroll.

Rules
-----
- Rotation: the first interaction on a new canonical day deletes the old
  batch, persists a freshly drawn one and resets the reroll budget to the
  cap. A batch persisted for today is never regenerated (unique
  ``(account_id, day, slot)``).
- Progress: ``advance`` bumps every active, uncompleted quest of the given
  type by ``delta``, clamped to its target. With an ``event_id`` the
  gameplay event is recorded and a repeat is a no-op; without one progress
  is at-least-once, bounded by the clamp.
- Claim: completed and unclaimed quests pay ``floor(base * multiplier)``
  through AccountMutator in the same transaction that sets ``claimed``.
- Reroll: consumes one unit of today's budget and replaces an uncompleted
  quest with a new draw (new type, rarity and zero progress).

Every operation locks the account row before touching quest rows, so
concurrent claim/reroll/advance calls for one account serialize.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from ledgerquest.core.clock import epoch_day
from ledgerquest.core.database.service import DatabaseService
from ledgerquest.core.logging.logger import get_logger
from ledgerquest.core.validation.input_validator import InputValidator
from ledgerquest.database.models import (
    Quest,
    QuestProgressEvent,
    QuestRerollBudget,
    QuestType,
    TransactionType,
)
from ledgerquest.modules.quest.catalog import QuestCatalog, QuestDraw
from ledgerquest.modules.shared.base_repository import BaseRepository
from ledgerquest.modules.shared.base_service import BaseService
from ledgerquest.modules.shared.exceptions import (
    AlreadyClaimedError,
    CannotRerollCompletedError,
    NoRerollsRemainingError,
    NotCompletedError,
    NotFoundError,
)
from ledgerquest.modules.shared.formulas import quest_reward

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from ledgerquest.core.clock import Clock
    from ledgerquest.core.config.manager import ConfigManager
    from ledgerquest.core.database.retry_policy import DatabaseRetryPolicy
    from ledgerquest.core.event.bus import EventBus
    from ledgerquest.modules.account.mutator import AccountMutator

MAX_PROGRESS_DELTA = 1_000


# ============================================================================
# Repositories
# ============================================================================


class QuestRepository(BaseRepository[Quest]):
    async def for_day(
        self,
        session: AsyncSession,
        account_id: str,
        day: date,
        *,
        for_update: bool = False,
    ) -> List[Quest]:
        return await self.find_many_where(
            session,
            Quest.account_id == account_id,
            Quest.day == day,
            order_by=[Quest.slot],
            for_update=for_update,
        )


class QuestRerollBudgetRepository(BaseRepository[QuestRerollBudget]):
    pass


class QuestProgressEventRepository(BaseRepository[QuestProgressEvent]):
    pass


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class QuestView:
    quest_id: int
    day: int
    slot: int
    quest_type: str
    description: str
    target: int
    progress: int
    base_reward: int
    multiplier: Decimal
    rarity: str
    reward: int
    completed: bool
    claimed: bool
    catalog_version: int

    @classmethod
    def from_model(cls, quest: Quest) -> "QuestView":
        return cls(
            quest_id=quest.id,
            day=epoch_day(quest.day),
            slot=quest.slot,
            quest_type=quest.quest_type,
            description=quest.description,
            target=quest.target,
            progress=quest.progress,
            base_reward=quest.base_reward,
            multiplier=Decimal(quest.multiplier),
            rarity=quest.rarity,
            reward=quest_reward(quest.base_reward, quest.multiplier),
            completed=quest.completed,
            claimed=quest.claimed,
            catalog_version=quest.catalog_version,
        )


@dataclass(frozen=True)
class QuestBoard:
    day: int
    quests: Tuple[QuestView, ...]
    rerolls_remaining: int


@dataclass(frozen=True)
class QuestClaim:
    reward: int
    new_balance: int
    quest: QuestView


@dataclass(frozen=True)
class QuestRerollResult:
    quest: QuestView
    rerolls_remaining: int


@dataclass
class _DayState:
    quests: List[Quest]
    budget: QuestRerollBudget


# ============================================================================
# QuestService
# ============================================================================


class QuestService(BaseService):
    """
    Daily quest engine.

    Public Methods
    --------------
    - get_active_quests() -> QuestBoard (rotates on a new day)
    - advance() -> list of updated QuestView
    - claim() -> QuestClaim
    - reroll() -> QuestRerollResult
    - preview_reward() -> int
    """

    component = "quest"

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        mutator: AccountMutator,
        *,
        catalog: Optional[QuestCatalog] = None,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(
            config_manager, event_bus, logger, retry_policy=retry_policy, clock=clock
        )
        self._mutator = mutator
        self.catalog = catalog or QuestCatalog.from_config(config_manager)
        self._quests = QuestRepository(Quest, get_logger(f"{__name__}.QuestRepository"))
        self._budgets = QuestRerollBudgetRepository(
            QuestRerollBudget, get_logger(f"{__name__}.QuestRerollBudgetRepository")
        )
        self._events_seen = QuestProgressEventRepository(
            QuestProgressEvent, get_logger(f"{__name__}.QuestProgressEventRepository")
        )

    @staticmethod
    def preview_reward(quest: Quest | QuestView | QuestDraw) -> int:
        """The payout a claim of ``quest`` would credit."""
        if isinstance(quest, QuestDraw):
            return quest.reward
        return quest_reward(quest.base_reward, quest.multiplier)

    # ========================================================================
    # ROTATION
    # ========================================================================

    async def _ensure_current(
        self,
        session: AsyncSession,
        account_id: str,
        today: date,
    ) -> _DayState:
        """Rotate to ``today`` if needed. The caller holds the account lock."""
        budget = await self._budgets.get(session, account_id, for_update=True)
        quests = await self._quests.for_day(session, account_id, today, for_update=True)
        if not quests:
            removed = await self._quests.delete_where(
                session, Quest.account_id == account_id, Quest.day != today
            )
            await self._events_seen.delete_where(
                session,
                QuestProgressEvent.account_id == account_id,
                QuestProgressEvent.day != today,
            )

            quests = [
                self._quests.add(session, self._new_quest(account_id, today, draw))
                for draw in self.catalog.draw_batch(account_id, today)
            ]
            await self._quests.flush(session)

            self.log.info(
                "Quest batch generated",
                extra={
                    "account_id": account_id,
                    "day": today.isoformat(),
                    "quest_types": [q.quest_type for q in quests],
                    "replaced_count": removed,
                    "catalog_version": self.catalog.version,
                },
            )
            self.emit_after_commit(
                session,
                "quest.generated",
                {
                    "account_id": account_id,
                    "day": epoch_day(today),
                    "quest_ids": [q.id for q in quests],
                },
            )

        if budget is None:
            budget = self._budgets.add(
                session,
                QuestRerollBudget(
                    account_id=account_id, day=today, remaining=self.catalog.reroll_cap
                ),
            )
        elif budget.day != today:
            budget.day = today
            budget.remaining = self.catalog.reroll_cap

        return _DayState(quests=quests, budget=budget)

    @staticmethod
    def _new_quest(account_id: str, day: date, draw: QuestDraw) -> Quest:
        return Quest(
            account_id=account_id,
            day=day,
            slot=draw.slot,
            quest_type=draw.template.quest_type,
            description=draw.template.description,
            target=draw.template.target,
            progress=0,
            base_reward=draw.template.base_reward,
            multiplier=draw.rarity.multiplier,
            rarity=draw.rarity.name,
            catalog_version=draw.catalog_version,
            draw_index=draw.draw_index,
            completed=False,
            claimed=False,
        )

    @staticmethod
    def _find_quest(state: _DayState, quest_id: int) -> Quest:
        for quest in state.quests:
            if quest.id == quest_id:
                return quest
        # Unknown id, another account's quest, or a quest from a rotated-out day.
        raise NotFoundError("Quest", quest_id)

    # ========================================================================
    # READ / ROTATE
    # ========================================================================

    async def get_active_quests(
        self,
        account_id: str,
        *,
        timeout: Optional[float] = None,
    ) -> QuestBoard:
        """Today's batch and remaining rerolls; generates the batch if needed."""
        account_id = InputValidator.validate_account_id(account_id)

        async def work() -> QuestBoard:
            today = self.clock.today()
            async with DatabaseService.get_transaction() as session:
                await self._mutator.lock_account(session, account_id)
                state = await self._ensure_current(session, account_id, today)
                return QuestBoard(
                    day=epoch_day(today),
                    quests=tuple(QuestView.from_model(q) for q in state.quests),
                    rerolls_remaining=state.budget.remaining,
                )

        return await self.run_unit(
            "quest.get_active", work, timeout=timeout, account_id=account_id
        )

    # ========================================================================
    # PROGRESS
    # ========================================================================

    async def advance(
        self,
        account_id: str,
        quest_type: QuestType | str,
        delta: int = 1,
        *,
        event_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[QuestView]:
        """
        Add ``delta`` progress to every active, uncompleted quest of ``quest_type``.

        Returns the quests that changed. A repeated ``event_id`` returns ``[]``.
        """
        account_id = InputValidator.validate_account_id(account_id)
        quest_type = QuestType(
            InputValidator.validate_choice(quest_type, "quest_type", QuestType.values())
        ).value
        delta = InputValidator.validate_positive_integer(delta, "delta", max_value=MAX_PROGRESS_DELTA)
        if event_id is not None:
            event_id = InputValidator.validate_string(event_id, "event_id", max_length=128)

        async def work() -> List[QuestView]:
            today = self.clock.today()
            async with DatabaseService.get_transaction() as session:
                await self._mutator.lock_account(session, account_id)
                state = await self._ensure_current(session, account_id, today)

                if event_id is not None:
                    seen = await self._events_seen.exists(
                        session,
                        QuestProgressEvent.account_id == account_id,
                        QuestProgressEvent.event_id == event_id,
                    )
                    if seen:
                        self.log.debug(
                            "Duplicate gameplay event ignored",
                            extra={"account_id": account_id, "event_id": event_id},
                        )
                        return []
                    self._events_seen.add(
                        session,
                        QuestProgressEvent(
                            account_id=account_id,
                            event_id=event_id,
                            quest_type=quest_type,
                            day=today,
                        ),
                    )

                updated: List[QuestView] = []
                for quest in state.quests:
                    if quest.quest_type != quest_type or quest.completed:
                        continue
                    quest.progress = min(quest.target, quest.progress + delta)
                    if quest.progress >= quest.target:
                        quest.completed = True
                    view = QuestView.from_model(quest)
                    updated.append(view)

                    self.emit_after_commit(
                        session,
                        "quest.completed" if view.completed else "quest.progressed",
                        {
                            "account_id": account_id,
                            "quest_id": view.quest_id,
                            "quest_type": quest_type,
                            "progress": view.progress,
                            "target": view.target,
                        },
                    )
                return updated

        try:
            updated = await self.run_unit(
                "quest.advance",
                work,
                timeout=timeout,
                account_id=account_id,
                quest_type=quest_type,
            )
        except IntegrityError:
            if event_id is None:
                raise
            # The same event id committed concurrently.
            return []

        if updated:
            self.log.info(
                f"Quest progress: {quest_type} +{delta}",
                extra={
                    "account_id": account_id,
                    "quest_ids": [q.quest_id for q in updated],
                    "completed_ids": [q.quest_id for q in updated if q.completed],
                },
            )
        return updated

    # ========================================================================
    # CLAIM
    # ========================================================================

    async def claim(
        self,
        account_id: str,
        quest_id: int,
        *,
        timeout: Optional[float] = None,
    ) -> QuestClaim:
        """
        Pay out a completed quest.

        Raises:
            NotFoundError: No such quest in the account's current batch
            AlreadyClaimedError: Already paid (including a lost race)
            NotCompletedError: Progress has not reached the target
        """
        account_id = InputValidator.validate_account_id(account_id)
        quest_id = InputValidator.validate_positive_integer(quest_id, "quest_id")

        self.log_operation("quest.claim", account_id=account_id, quest_id=quest_id)

        async def work() -> QuestClaim:
            today = self.clock.today()
            async with DatabaseService.get_transaction() as session:
                await self._mutator.lock_account(session, account_id)
                state = await self._ensure_current(session, account_id, today)
                quest = self._find_quest(state, quest_id)

                if quest.claimed:
                    raise AlreadyClaimedError("quest", quest_id)
                if not quest.completed:
                    raise NotCompletedError(quest_id, quest.progress, quest.target)

                reward = quest_reward(quest.base_reward, quest.multiplier)
                quest.claimed = True

                result = await self._mutator.apply_delta(
                    account_id,
                    reward,
                    TransactionType.QUEST_REWARD,
                    f"Quest reward: {quest.description}",
                    {
                        "quest_id": quest.id,
                        "quest_type": quest.quest_type,
                        "base_reward": quest.base_reward,
                        "multiplier": str(quest.multiplier),
                        "rarity": quest.rarity,
                        "catalog_version": quest.catalog_version,
                    },
                    session=session,
                )
                view = QuestView.from_model(quest)

                self.emit_after_commit(
                    session,
                    "quest.claimed",
                    {
                        "account_id": account_id,
                        "quest_id": quest_id,
                        "reward": reward,
                        "new_balance": result.new_balance,
                    },
                )
                return QuestClaim(reward=reward, new_balance=result.new_balance, quest=view)

        try:
            claim = await self.run_unit(
                "quest.claim", work, timeout=timeout, account_id=account_id, quest_id=quest_id
            )
        except IntegrityError as exc:
            raise AlreadyClaimedError("quest", quest_id) from exc

        self.log.info(
            f"Quest claimed: +{claim.reward}",
            extra={"account_id": account_id, "quest_id": quest_id, "new_balance": claim.new_balance},
        )
        return claim

    # ========================================================================
    # REROLL
    # ========================================================================

    async def reroll(
        self,
        account_id: str,
        quest_id: int,
        *,
        timeout: Optional[float] = None,
    ) -> QuestRerollResult:
        """
        Replace one uncompleted quest with a new draw.

        Raises:
            NotFoundError: No such quest in the account's current batch
            NoRerollsRemainingError: Today's budget is spent
            CannotRerollCompletedError: The quest is completed (or claimed)
        """
        account_id = InputValidator.validate_account_id(account_id)
        quest_id = InputValidator.validate_positive_integer(quest_id, "quest_id")

        self.log_operation("quest.reroll", account_id=account_id, quest_id=quest_id)

        async def work() -> QuestRerollResult:
            today = self.clock.today()
            async with DatabaseService.get_transaction() as session:
                await self._mutator.lock_account(session, account_id)
                state = await self._ensure_current(session, account_id, today)
                quest = self._find_quest(state, quest_id)

                if state.budget.remaining <= 0:
                    raise NoRerollsRemainingError(account_id, self.catalog.reroll_cap)
                if quest.completed:
                    raise CannotRerollCompletedError(quest_id)

                previous_type = quest.quest_type
                draw = self.catalog.draw(
                    account_id,
                    today,
                    quest.slot,
                    quest.draw_index + 1,
                    exclude={q.quest_type for q in state.quests},
                )

                quest.quest_type = draw.template.quest_type
                quest.description = draw.template.description
                quest.target = draw.template.target
                quest.base_reward = draw.template.base_reward
                quest.multiplier = draw.rarity.multiplier
                quest.rarity = draw.rarity.name
                quest.catalog_version = draw.catalog_version
                quest.draw_index = draw.draw_index
                quest.progress = 0
                state.budget.remaining -= 1

                await self._quests.flush(session)
                view = QuestView.from_model(quest)
                remaining = state.budget.remaining

                self.emit_after_commit(
                    session,
                    "quest.rerolled",
                    {
                        "account_id": account_id,
                        "quest_id": quest_id,
                        "previous_type": previous_type,
                        "quest_type": view.quest_type,
                        "rerolls_remaining": remaining,
                    },
                )
                return QuestRerollResult(quest=view, rerolls_remaining=remaining)

        result = await self.run_unit(
            "quest.reroll", work, timeout=timeout, account_id=account_id, quest_id=quest_id
        )
        self.log.info(
            f"Quest rerolled: {result.quest.quest_type}",
            extra={
                "account_id": account_id,
                "quest_id": quest_id,
                "rerolls_remaining": result.rerolls_remaining,
            },
        )
        return result
