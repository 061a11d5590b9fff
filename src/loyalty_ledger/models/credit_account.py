"""Investor credit and media budget model."""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class CreditType(str, enum.Enum):
    """Credit-bearing balance categories reconciled by the renewal batch."""

    INVESTOR_OUTLET = "investor_outlet"
    INVESTOR_GROUP = "investor_group"
    MEDIA_BUDGET = "media_budget"


class CreditAccount(Base):
    """Annually allocated credit balance held by an investor or media account."""

    __tablename__ = "credit_accounts"
    __table_args__ = (
        UniqueConstraint("account_id", "credit_type", "outlet", name="credit_accounts_unique"),
    )

    credit_account_id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False)
    credit_type = Column(
        SAEnum(CreditType, name="credit_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    outlet = Column(String)
    balance = Column(Integer, nullable=False, default=0)
    annual_allocation = Column(Integer, nullable=False, default=0)
    spent_this_year = Column(Integer, nullable=False, default=0)
    auto_renew = Column(Boolean, nullable=False, default=False)
    enabled = Column(Boolean, nullable=False, default=True)
    allocated_at = Column(DateTime)
    expires_at = Column(DateTime)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    account = relationship("Account", back_populates="credit_accounts")
    ledger_entries = relationship("LedgerEntry", back_populates="credit_account")
