"""
Quest, QuestRerollBudget, QuestProgressEvent: daily quest state.
Schema only.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledgerquest.core.database.base import Base, IdMixin, TimestampMixin, utc_now


class Quest(Base, IdMixin, TimestampMixin):
    """
    One active quest in an account's daily batch.

    Everything needed to pay the quest out (target, base reward, multiplier,
    catalog version) is copied onto the row at generation time, so a later
    catalog change never alters a quest already handed out.
    """

    __tablename__ = "quests"
    __table_args__ = (
        UniqueConstraint("account_id", "day", "slot", name="uq_quests_account_day_slot"),
        CheckConstraint("progress >= 0 AND progress <= target", name="progress_within_target"),
        CheckConstraint("target >= 1", name="target_positive"),
        CheckConstraint("multiplier >= 1", name="multiplier_at_least_one"),
        CheckConstraint("NOT claimed OR completed", name="claimed_implies_completed"),
        Index("ix_quests_account_day", "account_id", "day"),
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    day: Mapped[date] = mapped_column(Date, nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)

    quest_type: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(String(128), nullable=False)

    target: Mapped[int] = mapped_column(Integer, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    base_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False)
    rarity: Mapped[str] = mapped_column(String(32), nullable=False)
    catalog_version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Number of draws consumed for this slot; 0 for the initial draw.
    draw_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return (
            f"<Quest id={self.id} account={self.account_id!r} type={self.quest_type} "
            f"{self.progress}/{self.target}>"
        )


class QuestRerollBudget(Base, TimestampMixin):
    """Remaining rerolls for the account's current quest day."""

    __tablename__ = "quest_reroll_budget"
    __table_args__ = (
        CheckConstraint("remaining >= 0", name="remaining_non_negative"),
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        primary_key=True,
    )

    day: Mapped[date] = mapped_column(Date, nullable=False)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False)


class QuestProgressEvent(Base, IdMixin):
    """Gameplay events already applied to quest progress, keyed by caller event id."""

    __tablename__ = "quest_progress_events"
    __table_args__ = (
        UniqueConstraint("account_id", "event_id", name="uq_quest_progress_events_account_event"),
        Index("ix_quest_progress_events_account_day", "account_id", "day"),
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    event_id: Mapped[str] = mapped_column(String(128), nullable=False)
    quest_type: Mapped[str] = mapped_column(String(32), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
