"""Daily login reward with streaks."""

from .reward_service import DailyRewardClaim, DailyRewardService, DailyRewardStatus

__all__ = ["DailyRewardService", "DailyRewardStatus", "DailyRewardClaim"]
