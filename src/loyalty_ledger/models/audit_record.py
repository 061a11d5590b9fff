"""Audit trail model."""

import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum as SAEnum, Integer, String

from ..core.database import Base
from ..utils.datetime import utcnow


class AuditSeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AuditRecord(Base):
    """Append-only record of what changed, written outside the business transaction."""

    __tablename__ = "audit_records"

    audit_id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String)
    action = Column(String, nullable=False)
    description = Column(String)
    staff_id = Column(Integer)
    changes = Column(JSON)
    details = Column(JSON)
    severity = Column(
        SAEnum(AuditSeverity, name="audit_severity", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AuditSeverity.INFO,
    )
    success = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
