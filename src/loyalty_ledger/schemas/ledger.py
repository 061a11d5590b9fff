"""Ledger and balance schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ..models import CreditType, LedgerEntryKind


class LedgerEntryRead(BaseModel):
    entry_id: int
    account_id: int
    credit_account_id: Optional[int] = None
    kind: LedgerEntryKind
    points_delta: int
    amount_value: Optional[Decimal] = None
    outlet: Optional[str] = None
    staff_id: Optional[int] = None
    voucher_id: Optional[int] = None
    reverses_entry_id: Optional[int] = None
    note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class BalanceRead(BaseModel):
    account_id: int
    points_balance: int


class BalanceVerification(BaseModel):
    account_id: int
    cached_balance: int
    ledger_balance: int
    entry_count: int
    consistent: bool


class PointsGrantCreate(BaseModel):
    """Manual, birthday or streak reward."""

    points: int = Field(..., gt=0)
    kind: str = Field("grant", pattern="^(grant|birthday|streak)$")
    staff_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=280)


class ReversalCreate(BaseModel):
    staff_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=280)


class CreditMovementCreate(BaseModel):
    credits: int = Field(..., gt=0)
    outlet: Optional[str] = None
    staff_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=280)


class CreditAccountRead(BaseModel):
    credit_account_id: int
    account_id: int
    credit_type: CreditType
    outlet: Optional[str] = None
    balance: int
    annual_allocation: int
    spent_this_year: int
    auto_renew: bool
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True
