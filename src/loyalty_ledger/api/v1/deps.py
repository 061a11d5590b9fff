"""Shared request dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session, sessionmaker

from ...core.database import get_session_factory
from ...core.errors import LedgerRuleViolation
from ...services.audit_service import AuditSink, DatabaseAuditSink
from ...services.notification_service import Notifier, build_notifier


def get_audit_sink(session_factory: sessionmaker = Depends(get_session_factory)) -> AuditSink:
    return DatabaseAuditSink(session_factory)


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    return build_notifier()


def rule_violation_to_http(db: Session, exc: LedgerRuleViolation) -> HTTPException:
    """Roll back the request session and describe the failure for the client."""

    db.rollback()
    return HTTPException(status_code=exc.status_code, detail=exc.as_payload())
