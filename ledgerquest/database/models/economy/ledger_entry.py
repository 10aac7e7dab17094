"""
LedgerEntry: append-only record of one balance change.
Schema only, plus the mapper hooks that refuse updates and deletes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from ledgerquest.core.database.base import Base, IdMixin, utc_now
from ledgerquest.core.exceptions import LedgerImmutableError
from ledgerquest.database.models.types import JSONType


class LedgerEntry(Base, IdMixin):
    """
    One signed coin movement.

    For each account, entries ordered by id replay to the current balance:
    ``resulting_balance`` is the running sum of ``amount`` up to and
    including the entry.
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("ix_ledger_entries_account_id_id", "account_id", "id"),
        Index("ix_ledger_entries_type", "transaction_type"),
        Index("ix_ledger_entries_correlation_id", "correlation_id"),
    )

    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transaction_type: Mapped[str] = mapped_column(String(32), nullable=False)

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    resulting_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # "metadata" is reserved on declarative classes.
    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
    )

    correlation_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry id={self.id} account={self.account_id!r} "
            f"amount={self.amount} type={self.transaction_type}>"
        )


@event.listens_for(LedgerEntry, "before_update")
def _refuse_update(mapper, connection, target: LedgerEntry) -> None:
    raise LedgerImmutableError(target.id, "update")


@event.listens_for(LedgerEntry, "before_delete")
def _refuse_delete(mapper, connection, target: LedgerEntry) -> None:
    raise LedgerImmutableError(target.id, "delete")
