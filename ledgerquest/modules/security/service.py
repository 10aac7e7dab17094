"""
SecurityRewardService
=====================

Purpose
-------
One-time bonuses for good account hygiene:

    email     email address verified              500 coins
    mfa       multi-factor authentication enabled 1000 coins
    password  password changed within N days      250 coins (N = 182)

Amounts and the freshness window come from ``security_rewards.*``.

Rules
-----
- Eligibility for every predicate is tracked, but ``status`` surfaces at most
  one offer: the first satisfied, ungranted predicate in the order above.
- ``claim`` re-evaluates the predicate on the locked account row and inserts
  the grant row in the same transaction as the credit. The grant is
  permanent: satisfying a predicate again later never pays twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Dict, FrozenSet, Optional

from sqlalchemy.exc import IntegrityError

from ledgerquest.core.database.service import DatabaseService
from ledgerquest.core.logging.logger import get_logger
from ledgerquest.core.validation.input_validator import InputValidator
from ledgerquest.database.models import Account, SecurityPredicate, SecurityRewardGrant, TransactionType
from ledgerquest.modules.shared.base_repository import BaseRepository
from ledgerquest.modules.shared.base_service import BaseService
from ledgerquest.modules.shared.exceptions import (
    AlreadyClaimedError,
    NotFoundError,
    PredicateNotSatisfiedError,
)

if TYPE_CHECKING:
    from logging import Logger

    from ledgerquest.core.clock import Clock
    from ledgerquest.core.config.manager import ConfigManager
    from ledgerquest.core.database.retry_policy import DatabaseRetryPolicy
    from ledgerquest.core.event.bus import EventBus
    from ledgerquest.modules.account.mutator import AccountMutator

DEFAULT_REWARDS: Dict[str, int] = {
    SecurityPredicate.EMAIL.value: 500,
    SecurityPredicate.MFA.value: 1000,
    SecurityPredicate.PASSWORD.value: 250,
}
DEFAULT_PASSWORD_FRESHNESS_DAYS = 182

DESCRIPTIONS: Dict[str, str] = {
    SecurityPredicate.EMAIL.value: "Security reward: email verified",
    SecurityPredicate.MFA.value: "Security reward: MFA enabled",
    SecurityPredicate.PASSWORD.value: "Security reward: password updated",
}


class SecurityRewardGrantRepository(BaseRepository[SecurityRewardGrant]):
    pass


@dataclass(frozen=True)
class SecurityRewardStatus:
    eligible: Dict[str, bool]
    granted: FrozenSet[str]
    next_offer: Optional[str]
    next_reward: int


@dataclass(frozen=True)
class SecurityRewardClaim:
    predicate_key: str
    reward: int
    new_balance: int


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class SecurityRewardService(BaseService):
    """
    Public Methods
    --------------
    - evaluate() -> predicate results for one account row
    - status() -> SecurityRewardStatus (read only)
    - claim() -> SecurityRewardClaim
    """

    component = "security"

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
        self._grants = SecurityRewardGrantRepository(
            SecurityRewardGrant, get_logger(f"{__name__}.SecurityRewardGrantRepository")
        )

    def reward_for(self, predicate_key: str) -> int:
        return int(
            self.get_config(
                f"security_rewards.{predicate_key}.reward", DEFAULT_REWARDS[predicate_key]
            )
        )

    @property
    def password_freshness(self) -> timedelta:
        days = self.get_config(
            "security_rewards.password_freshness_days", DEFAULT_PASSWORD_FRESHNESS_DAYS
        )
        return timedelta(days=int(days))

    def evaluate(self, account: Account) -> Dict[str, bool]:
        """Current truth of every predicate, in offer order."""
        changed_at = account.password_changed_at
        password_fresh = changed_at is not None and (
            self.clock.now() - _as_utc(changed_at) <= self.password_freshness
        )
        return {
            SecurityPredicate.EMAIL.value: bool(account.email_verified),
            SecurityPredicate.MFA.value: bool(account.mfa_enabled),
            SecurityPredicate.PASSWORD.value: password_fresh,
        }

    async def status(self, account_id: str) -> SecurityRewardStatus:
        account_id = InputValidator.validate_account_id(account_id)

        async with DatabaseService.get_session() as session:
            account = await session.get(Account, account_id)
            if account is None:
                raise NotFoundError("Account", account_id)
            eligible = self.evaluate(account)
            grants = await self._grants.find_many_where(
                session, SecurityRewardGrant.account_id == account_id
            )

        granted = frozenset(g.predicate_key for g in grants)
        next_offer = next(
            (key for key, ok in eligible.items() if ok and key not in granted),
            None,
        )
        return SecurityRewardStatus(
            eligible=eligible,
            granted=granted,
            next_offer=next_offer,
            next_reward=self.reward_for(next_offer) if next_offer else 0,
        )

    async def claim(
        self,
        account_id: str,
        predicate_key: SecurityPredicate | str,
        *,
        timeout: Optional[float] = None,
    ) -> SecurityRewardClaim:
        """
        Grant the bonus for ``predicate_key``.

        Raises:
            ValidationError: Unknown predicate key
            NotFoundError: Unknown account
            AlreadyClaimedError: Granted before (including a lost race)
            PredicateNotSatisfiedError: The condition does not hold right now
        """
        account_id = InputValidator.validate_account_id(account_id)
        key = SecurityPredicate(
            InputValidator.validate_choice(predicate_key, "predicate_key", SecurityPredicate.values())
        ).value
        reward = self.reward_for(key)

        self.log_operation("security.claim", account_id=account_id, predicate_key=key)

        async def work() -> SecurityRewardClaim:
            async with DatabaseService.get_transaction() as session:
                account = await self._mutator.lock_account(session, account_id)

                already = await self._grants.exists(
                    session,
                    SecurityRewardGrant.account_id == account_id,
                    SecurityRewardGrant.predicate_key == key,
                )
                if already:
                    raise AlreadyClaimedError(f"security:{key}", key)
                if not self.evaluate(account)[key]:
                    raise PredicateNotSatisfiedError(account_id, key)

                self._grants.add(
                    session,
                    SecurityRewardGrant(account_id=account_id, predicate_key=key, reward=reward),
                )
                result = await self._mutator.apply_delta(
                    account_id,
                    reward,
                    TransactionType.SECURITY_REWARD,
                    DESCRIPTIONS[key],
                    {"predicate_key": key},
                    session=session,
                )
                self.emit_after_commit(
                    session,
                    "security_reward.claimed",
                    {
                        "account_id": account_id,
                        "predicate_key": key,
                        "reward": reward,
                        "new_balance": result.new_balance,
                    },
                )
                return SecurityRewardClaim(
                    predicate_key=key, reward=reward, new_balance=result.new_balance
                )

        try:
            claim = await self.run_unit(
                "security.claim", work, timeout=timeout, account_id=account_id, predicate_key=key
            )
        except IntegrityError as exc:
            raise AlreadyClaimedError(f"security:{key}", key) from exc

        self.log.info(
            f"Security reward claimed: {key} +{reward}",
            extra={"account_id": account_id, "new_balance": claim.new_balance},
        )
        return claim
