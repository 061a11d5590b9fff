"""Voucher instance model."""

import enum
import uuid

from sqlalchemy import Column, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class VoucherInstanceStatus(str, enum.Enum):
    """Stored lifecycle states of a claimed voucher."""

    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"


class VoucherInstance(Base):
    """A single-use claim of a catalog voucher by one account."""

    __tablename__ = "voucher_instances"

    instance_id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(Uuid, nullable=False, unique=True, default=uuid.uuid4)
    account_id = Column(Integer, ForeignKey("accounts.account_id", ondelete="RESTRICT"), nullable=False)
    voucher_id = Column(Integer, ForeignKey("vouchers.voucher_id", ondelete="RESTRICT"), nullable=False)
    status = Column(
        SAEnum(VoucherInstanceStatus, name="voucher_instance_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=VoucherInstanceStatus.ACTIVE,
    )
    claimed_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
    used_by_staff_id = Column(Integer)
    used_at_outlet = Column(String)
    expired_at = Column(DateTime)

    account = relationship("Account", back_populates="voucher_instances")
    voucher = relationship("Voucher")
