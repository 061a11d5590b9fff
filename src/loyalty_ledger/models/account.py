"""Account domain model."""

import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum as SAEnum, Integer, Numeric, String
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class AccountType(str, enum.Enum):
    """Kinds of principals holding a balance."""

    CUSTOMER = "customer"
    INVESTOR = "investor"
    MEDIA = "media"


class Account(Base):
    """A customer, investor or media principal.

    ``points_balance`` is a cache of the signed sum of the account's points
    ledger entries and is only ever changed by the ledger service.
    ``last_activity_at`` moves on every earn and voucher use; points lapse
    after a long enough gap.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("points_balance >= 0", name="accounts_points_balance_non_negative"),
    )

    account_id = Column(Integer, primary_key=True, autoincrement=True)
    account_type = Column(
        SAEnum(AccountType, name="account_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AccountType.CUSTOMER,
    )
    display_name = Column(String, nullable=False)
    phone = Column(String)
    points_balance = Column(Integer, nullable=False, default=0)
    total_spend = Column(Numeric(12, 2), nullable=False, default=0)
    total_purchases_count = Column(Integer, nullable=False, default=0)
    last_activity_at = Column(DateTime)
    expiry_warning_sent_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    ledger_entries = relationship("LedgerEntry", back_populates="account")
    voucher_instances = relationship("VoucherInstance", back_populates="account")
    credit_accounts = relationship("CreditAccount", back_populates="account")
