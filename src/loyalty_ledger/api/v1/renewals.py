"""Manual triggers for the scheduled batches and audit read-back."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, sessionmaker

from ...core.database import get_db, get_session_factory
from ...models import AuditSeverity
from ...schemas import AuditRecordRead, CategorySummaryRead, PointsExpirySummaryRead, RenewalSummaryRead
from ...services import audit_service, points_expiry_service, renewal_service
from ...services.audit_service import AuditSink
from ...services.notification_service import Notifier
from .deps import get_audit_sink, get_notifier

router = APIRouter(tags=["renewals"])


@router.post("/renewals/run", response_model=RenewalSummaryRead, summary="Run the annual renewal now")
def run_renewal(
    session_factory: sessionmaker = Depends(get_session_factory),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> RenewalSummaryRead:
    """Safe to call repeatedly; rows already renewed for the cycle are skipped."""

    summary = renewal_service.run_annual_renewal(session_factory, audit_sink=audit_sink)
    return RenewalSummaryRead(
        ran_at=summary.ran_at,
        total_changed=summary.total_changed,
        categories={
            name: CategorySummaryRead(
                renewed=category.renewed,
                expired=category.expired,
                credits_delta=category.credits_delta,
                error=category.error,
            )
            for name, category in summary.categories.items()
        },
    )


@router.post(
    "/points-expiry/run",
    response_model=PointsExpirySummaryRead,
    summary="Run the inactivity points expiry now",
)
def run_points_expiry(
    session_factory: sessionmaker = Depends(get_session_factory),
    audit_sink: AuditSink = Depends(get_audit_sink),
    notifier: Notifier = Depends(get_notifier),
) -> PointsExpirySummaryRead:
    """Warn idle customers and expire balances past the inactivity window."""

    summary = points_expiry_service.run_points_expiry(
        session_factory,
        notifier=notifier,
        audit_sink=audit_sink,
    )
    return PointsExpirySummaryRead(
        ran_at=summary.ran_at,
        warned=summary.warned,
        expired_accounts=summary.expired_accounts,
        points_expired=summary.points_expired,
        errors=summary.errors,
    )


@router.get("/audit-records", response_model=List[AuditRecordRead], summary="List audit records")
def list_audit_records(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    severity: Optional[AuditSeverity] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> List[AuditRecordRead]:
    records = audit_service.list_records(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        severity=severity,
        limit=limit,
        offset=offset,
    )
    return list(records)
