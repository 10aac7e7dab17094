"""
Reward formulas shared by the engines and their previews.

Claims and "what will I get" displays both call these functions, so the
number a player is shown is the number they are paid.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Optional, Sequence, Union

Multiplier = Union[Decimal, float, str, int]


def quest_reward(base_reward: int, multiplier: Multiplier) -> int:
    """``floor(base_reward * multiplier)`` in exact decimal arithmetic."""
    if not isinstance(multiplier, Decimal):
        # str() keeps 1.5 as Decimal("1.5") rather than its binary expansion
        multiplier = Decimal(str(multiplier))
    value = Decimal(base_reward) * multiplier
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def next_streak(last_claim: Optional[date], today: date, current_streak: int) -> int:
    """
    Streak after a claim on ``today``.

    Consecutive days extend the streak; a first claim or any gap starts over
    at 1. Same-day claims are rejected before this is called.
    """
    if last_claim is None:
        return 1
    gap = (today - last_claim).days
    if gap == 1:
        return current_streak + 1
    return 1


def daily_reward_for_streak(streak: int, schedule: Sequence[int]) -> int:
    """Reward for ``streak`` (1-based); the schedule repeats once exhausted."""
    if streak < 1:
        raise ValueError(f"streak must be >= 1, got {streak}")
    if not schedule:
        raise ValueError("daily reward schedule is empty")
    return int(schedule[(streak - 1) % len(schedule)])
