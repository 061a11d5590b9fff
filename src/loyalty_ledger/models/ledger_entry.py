"""Ledger model capturing balance movements."""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    event,
)
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..core.errors import ImmutableLedgerEntry
from ..utils.datetime import utcnow


class LedgerEntryKind(str, enum.Enum):
    """Ledger event classification."""

    EARN = "earn"
    REDEEM = "redeem"
    USE = "use"
    GRANT = "grant"
    RENEWAL = "renewal"
    EXPIRY = "expiry"
    BIRTHDAY = "birthday"
    STREAK = "streak"
    REVERSAL = "reversal"


class LedgerEntry(Base):
    """Immutable ledger of point and credit deltas for each account.

    Rows with ``credit_account_id`` set move a credit balance; all other rows
    move the owning account's points balance.
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint(
            "(kind IN ('earn', 'grant', 'birthday', 'streak') AND points_delta >= 0) "
            "OR (kind = 'use' AND points_delta = 0) "
            "OR (kind IN ('redeem', 'expiry') AND points_delta <= 0) "
            "OR kind IN ('renewal', 'reversal')",
            name="ledger_entries_delta_sign",
        ),
        Index("ix_ledger_entries_account_created", "account_id", "created_at"),
    )

    entry_id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.account_id", ondelete="RESTRICT"), nullable=False)
    credit_account_id = Column(Integer, ForeignKey("credit_accounts.credit_account_id", ondelete="RESTRICT"))
    kind = Column(
        SAEnum(LedgerEntryKind, name="ledger_entry_kind", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    points_delta = Column(Integer, nullable=False)
    amount_value = Column(Numeric(12, 2))
    outlet = Column(String)
    staff_id = Column(Integer)
    voucher_id = Column(Integer, ForeignKey("vouchers.voucher_id", ondelete="SET NULL"))
    voucher_instance_id = Column(Integer, ForeignKey("voucher_instances.instance_id", ondelete="SET NULL"))
    reverses_entry_id = Column(Integer, ForeignKey("ledger_entries.entry_id", ondelete="RESTRICT"))
    note = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    account = relationship("Account", back_populates="ledger_entries")
    credit_account = relationship("CreditAccount", back_populates="ledger_entries")
    voucher = relationship("Voucher")
    voucher_instance = relationship("VoucherInstance")


@event.listens_for(LedgerEntry, "before_update")
def _reject_update(mapper, connection, target) -> None:  # pragma: no cover - exercised via flush
    raise ImmutableLedgerEntry(f"Ledger entry {target.entry_id} is immutable; append a reversal instead")


@event.listens_for(LedgerEntry, "before_delete")
def _reject_delete(mapper, connection, target) -> None:  # pragma: no cover - exercised via flush
    raise ImmutableLedgerEntry(f"Ledger entry {target.entry_id} cannot be deleted")
