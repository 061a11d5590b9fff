"""Pydantic schemas for voucher claims and instances."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class VoucherClaimCreate(BaseModel):
    """Request body for claiming a catalog voucher."""

    account_id: int
    voucher_id: int


class VoucherRead(BaseModel):
    voucher_id: int
    title: str
    voucher_type: str
    points_required: int
    cash_value: Decimal

    class Config:
        from_attributes = True


class VoucherInstanceRead(BaseModel):
    """A claimed voucher with its derived status."""

    instance_id: int
    uuid: UUID
    account_id: int
    voucher: VoucherRead
    status: str
    stored_status: str
    claimed_at: datetime
    expires_at: datetime
    used_at: Optional[datetime] = None
    used_by_staff_id: Optional[int] = None
    used_at_outlet: Optional[str] = None
