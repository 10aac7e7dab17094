"""
DailyRewardService
==================

Purpose
-------
Once-per-day login reward with a consecutive-day streak.

Rules
-----
- A "day" is the calendar date in ``economy.canonical_timezone`` according to
  the server clock; client clocks are never consulted.
- Claiming on the day after the last claim extends the streak; a first claim
  or any longer gap restarts it at 1.
- Reward is ``schedule[(streak - 1) % len(schedule)]`` with the schedule from
  ``daily_rewards.schedule``.
- At most one claim per account per day. The eligibility check, the streak
  update and the credit run in one transaction behind the account row lock,
  so concurrent claims produce exactly one credit; the others see
  ``AlreadyClaimedError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError

from ledgerquest.core.clock import epoch_day
from ledgerquest.core.database.service import DatabaseService
from ledgerquest.core.logging.logger import get_logger
from ledgerquest.core.validation.input_validator import InputValidator
from ledgerquest.database.models import Account, DailyRewardState, TransactionType
from ledgerquest.modules.shared.base_repository import BaseRepository
from ledgerquest.modules.shared.base_service import BaseService
from ledgerquest.modules.shared.exceptions import AlreadyClaimedError, NotFoundError
from ledgerquest.modules.shared.formulas import daily_reward_for_streak, next_streak

if TYPE_CHECKING:
    from logging import Logger

    from ledgerquest.core.clock import Clock
    from ledgerquest.core.config.manager import ConfigManager
    from ledgerquest.core.database.retry_policy import DatabaseRetryPolicy
    from ledgerquest.core.event.bus import EventBus
    from ledgerquest.modules.account.mutator import AccountMutator

DEFAULT_SCHEDULE: Tuple[int, ...] = (50, 100, 150, 200, 250, 300, 1000)


class DailyRewardStateRepository(BaseRepository[DailyRewardState]):
    pass


@dataclass(frozen=True)
class DailyRewardStatus:
    eligible: bool
    streak: int
    next_streak: int
    next_reward: int
    last_claim_day: Optional[int]
    today: int


@dataclass(frozen=True)
class DailyRewardClaim:
    reward: int
    streak: int
    new_balance: int
    day: int


class DailyRewardService(BaseService):
    """
    Daily streak reward engine.

    Public Methods
    --------------
    - status() -> DailyRewardStatus (read only)
    - claim() -> DailyRewardClaim
    """

    component = "daily"

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        mutator: AccountMutator,
        *,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(
            config_manager, event_bus, logger, retry_policy=retry_policy, clock=clock
        )
        self._mutator = mutator
        self._states = DailyRewardStateRepository(
            DailyRewardState, get_logger(f"{__name__}.DailyRewardStateRepository")
        )

    def _schedule(self) -> Sequence[int]:
        schedule = self.get_config("daily_rewards.schedule", DEFAULT_SCHEDULE)
        return tuple(int(v) for v in schedule)

    # ========================================================================
    # READ
    # ========================================================================

    async def status(self, account_id: str) -> DailyRewardStatus:
        account_id = InputValidator.validate_account_id(account_id)
        schedule = self._schedule()
        today = self.clock.today()

        async with DatabaseService.get_session() as session:
            if await session.get(Account, account_id) is None:
                raise NotFoundError("Account", account_id)
            state = await self._states.get(session, account_id)

        last_claim = state.last_claim_date if state else None
        streak = state.streak_count if state else 0
        eligible = last_claim is None or last_claim < today
        upcoming = next_streak(last_claim, today, streak) if eligible else streak + 1

        return DailyRewardStatus(
            eligible=eligible,
            streak=streak,
            next_streak=upcoming,
            next_reward=daily_reward_for_streak(upcoming, schedule),
            last_claim_day=epoch_day(last_claim) if last_claim else None,
            today=epoch_day(today),
        )

    # ========================================================================
    # WRITE
    # ========================================================================

    async def claim(
        self,
        account_id: str,
        *,
        timeout: Optional[float] = None,
    ) -> DailyRewardClaim:
        """
        Claim today's reward.

        Raises:
            NotFoundError: Unknown account
            AlreadyClaimedError: Already claimed today (including a lost race)
        """
        account_id = InputValidator.validate_account_id(account_id)
        schedule = self._schedule()

        self.log_operation("daily.claim", account_id=account_id)

        async def work() -> DailyRewardClaim:
            today = self.clock.today()
            day_number = epoch_day(today)

            async with DatabaseService.get_transaction() as session:
                await self._mutator.lock_account(session, account_id)
                state = await self._states.get(session, account_id, for_update=True)

                if state is not None and state.last_claim_date is not None:
                    if state.last_claim_date >= today:
                        raise AlreadyClaimedError("daily_reward", day_number)

                previous_day = state.last_claim_date if state else None
                streak = next_streak(previous_day, today, state.streak_count if state else 0)
                reward = daily_reward_for_streak(streak, schedule)

                if state is None:
                    state = self._states.add(session, DailyRewardState(account_id=account_id))
                state.last_claim_date = today
                state.streak_count = streak
                state.last_reward = reward

                result = await self._mutator.apply_delta(
                    account_id,
                    reward,
                    TransactionType.DAILY_REWARD,
                    f"Daily reward (day {streak} of streak)",
                    {"day": day_number, "streak": streak},
                    session=session,
                )

                self.emit_after_commit(
                    session,
                    "daily_reward.claimed",
                    {
                        "account_id": account_id,
                        "reward": reward,
                        "streak": streak,
                        "day": day_number,
                        "new_balance": result.new_balance,
                    },
                )

            return DailyRewardClaim(
                reward=reward,
                streak=streak,
                new_balance=result.new_balance,
                day=day_number,
            )

        try:
            claim = await self.run_unit("daily.claim", work, timeout=timeout, account_id=account_id)
        except IntegrityError as exc:
            raise AlreadyClaimedError("daily_reward") from exc

        self.log.info(
            f"Daily reward claimed: +{claim.reward}",
            extra={
                "account_id": account_id,
                "streak": claim.streak,
                "day": claim.day,
                "new_balance": claim.new_balance,
            },
        )
        return claim
