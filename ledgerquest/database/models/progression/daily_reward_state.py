"""
DailyRewardState: login streak for each account.
Schema only. One row per account, created on first claim.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledgerquest.core.database.base import Base, TimestampMixin


class DailyRewardState(Base, TimestampMixin):
    __tablename__ = "daily_reward_state"
    __table_args__ = (
        CheckConstraint("streak_count >= 0", name="streak_non_negative"),
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Calendar day in the canonical time zone.
    last_claim_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    streak_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
