"""Voucher catalog model."""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SAEnum, Integer, Numeric, String

from ..core.database import Base
from ..utils.datetime import utcnow


class VoucherExpiryType(str, enum.Enum):
    """How a claimed instance derives its own expiry."""

    DAYS_AFTER_CLAIM = "days_after_claim"
    FIXED_DATE = "fixed_date"
    DEFAULT = "default"


class Voucher(Base):
    """Catalog item a customer can claim with points."""

    __tablename__ = "vouchers"

    voucher_id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(String)
    voucher_type = Column(String, nullable=False, default="free_item")
    points_required = Column(Integer, nullable=False, default=0)
    cash_value = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime)
    expiry_type = Column(
        SAEnum(VoucherExpiryType, name="voucher_expiry_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=VoucherExpiryType.DEFAULT,
    )
    expiry_days = Column(Integer)
    created_at = Column(DateTime, default=utcnow, nullable=False)
