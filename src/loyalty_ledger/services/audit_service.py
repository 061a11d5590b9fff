"""Best-effort audit trail.

Records are written in their own session after the business transaction has
committed. A failure to write one is logged and swallowed; it never changes the
outcome of the operation being audited.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import AuditRecord, AuditSeverity

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def record(
        self,
        *,
        entity_type: str,
        entity_id: Any,
        action: str,
        description: str,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        success: bool = True,
        staff_id: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> None: ...


class DatabaseAuditSink:
    """Writes audit records through a dedicated session per record."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def record(
        self,
        *,
        entity_type: str,
        entity_id: Any,
        action: str,
        description: str,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        success: bool = True,
        staff_id: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> None:
        changes = None
        if before is not None or after is not None:
            changes = {"before": before, "after": after}
        try:
            session = self._session_factory()
            try:
                session.add(
                    AuditRecord(
                        entity_type=entity_type,
                        entity_id=None if entity_id is None else str(entity_id),
                        action=action,
                        description=description,
                        staff_id=staff_id,
                        changes=changes,
                        details=details,
                        severity=severity,
                        success=success,
                    )
                )
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
        except Exception:
            logger.exception("failed to write audit record for %s %s", entity_type, entity_id)


def list_records(
    session: Session,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    severity: Optional[AuditSeverity] = None,
    limit: int = 100,
    offset: int = 0,
) -> Sequence[AuditRecord]:
    """Return audit records, newest first, with optional filters."""

    stmt = select(AuditRecord).order_by(AuditRecord.created_at.desc(), AuditRecord.audit_id.desc())
    if entity_type:
        stmt = stmt.where(AuditRecord.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(AuditRecord.entity_id == entity_id)
    if action:
        stmt = stmt.where(AuditRecord.action == action)
    if severity:
        stmt = stmt.where(AuditRecord.severity == severity)
    return session.execute(stmt.offset(offset).limit(limit)).scalars().all()


def safe_record(audit_sink: Optional[AuditSink], **kwargs: Any) -> bool:
    """Write an audit record without letting a sink failure escape."""

    if audit_sink is None:
        return False
    try:
        audit_sink.record(**kwargs)
        return True
    except Exception:
        logger.exception("audit sink raised for %s %s", kwargs.get("entity_type"), kwargs.get("entity_id"))
        return False
