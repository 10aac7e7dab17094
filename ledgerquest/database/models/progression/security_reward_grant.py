"""
SecurityRewardGrant: one-shot security bonuses already paid.
Schema only. The unique constraint makes each grant permanent.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledgerquest.core.database.base import Base, IdMixin, utc_now


class SecurityRewardGrant(Base, IdMixin):
    __tablename__ = "security_reward_grants"
    __table_args__ = (
        UniqueConstraint(
            "account_id",
            "predicate_key",
            name="uq_security_reward_grants_account_predicate",
        ),
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    predicate_key: Mapped[str] = mapped_column(String(16), nullable=False)

    reward: Mapped[int] = mapped_column(Integer, nullable=False)

    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
