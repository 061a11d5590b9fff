"""Pydantic schemas for point-of-sale scans."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class ScanRequest(BaseModel):
    """Payload sent by a staff device after scanning a customer's QR code."""

    qr_token: str = Field(..., min_length=1)
    amount: Optional[Decimal] = Field(
        None,
        max_digits=12,
        decimal_places=2,
        description="Purchase amount; required for identity codes.",
    )
    outlet: str = Field(..., min_length=1, max_length=120)
    staff_id: int = Field(..., gt=0)


class CustomerSummary(BaseModel):
    id: int
    name: str


class VoucherSummary(BaseModel):
    id: int
    title: str
    voucher_type: str


class ScanResponse(BaseModel):
    """Result of a successful scan."""

    type: str
    customer: CustomerSummary
    new_balance: int
    points_awarded: int = 0
    amount_spent: Optional[Decimal] = None
    voucher: Optional[VoucherSummary] = None
    value: Optional[Decimal] = None
