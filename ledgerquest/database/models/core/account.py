"""
Account: coin balance and security facts for one player.
Schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ledgerquest.core.database.base import Base, TimestampMixin


class Account(Base, TimestampMixin):
    """
    Balance holder.

    `coins` is written only by AccountMutator; every change has a matching
    ledger entry. Security columns are published by the identity layer and
    read by SecurityRewardEngine.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("coins >= 0", name="coins_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    coins: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mfa_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id!r} coins={self.coins}>"
