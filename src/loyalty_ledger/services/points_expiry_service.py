"""Lapse of points balances after a long stretch without activity.

Activity is an earn or a voucher use at the point of sale. A customer is warned
once per inactive stretch and, if nothing happens, loses the whole balance
through an ``expiry`` ledger entry. Both passes select on the account's own
markers, so the job can be re-run at any time without double effects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..core.config import Settings, get_settings
from ..models import Account, AuditSeverity, LedgerEntryKind
from ..utils.datetime import as_naive_utc
from . import ledger_service
from .audit_service import AuditSink, safe_record
from .notification_service import Notifier, safe_notify

logger = logging.getLogger(__name__)

WARNING_EVENT = "points_expiring_warning"
EXPIRED_EVENT = "points_expired"


@dataclass(frozen=True)
class ExpiryNotice:
    account_id: int
    points: int
    last_activity_at: datetime
    expires_on: datetime


@dataclass
class PointsExpirySummary:
    ran_at: datetime
    warned: int = 0
    expired_accounts: int = 0
    points_expired: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total_changed(self) -> int:
        return self.warned + self.expired_accounts


def _cutoffs(now: datetime, settings: Settings) -> tuple[datetime, datetime]:
    return (
        now - timedelta(days=settings.points_expiry_warning_days),
        now - timedelta(days=settings.points_expiry_days),
    )


def mark_expiry_warnings(
    session: Session,
    *,
    now: datetime,
    settings: Optional[Settings] = None,
) -> list[ExpiryNotice]:
    """Flag accounts inside the warning window that were not yet warned for this stretch."""

    settings = settings or get_settings()
    warn_cutoff, expire_cutoff = _cutoffs(now, settings)
    stmt = (
        select(Account)
        .where(
            Account.points_balance > 0,
            Account.last_activity_at.is_not(None),
            Account.last_activity_at < warn_cutoff,
            Account.last_activity_at >= expire_cutoff,
            or_(
                Account.expiry_warning_sent_at.is_(None),
                Account.expiry_warning_sent_at < Account.last_activity_at,
            ),
        )
        .order_by(Account.account_id)
        .with_for_update()
    )

    notices = []
    for account in session.execute(stmt).scalars().all():
        account.expiry_warning_sent_at = now
        notices.append(
            ExpiryNotice(
                account_id=account.account_id,
                points=account.points_balance,
                last_activity_at=account.last_activity_at,
                expires_on=account.last_activity_at + timedelta(days=settings.points_expiry_days),
            )
        )
    session.flush()
    return notices


def expire_inactive_points(
    session: Session,
    *,
    now: datetime,
    settings: Optional[Settings] = None,
) -> list[ExpiryNotice]:
    """Write off the full balance of every account idle past the expiry window."""

    settings = settings or get_settings()
    _, expire_cutoff = _cutoffs(now, settings)
    stmt = (
        select(Account)
        .where(
            Account.points_balance > 0,
            Account.last_activity_at.is_not(None),
            Account.last_activity_at < expire_cutoff,
        )
        .order_by(Account.account_id)
        .with_for_update()
    )

    notices = []
    for account in session.execute(stmt).scalars().all():
        points = account.points_balance
        ledger_service.append_entry(
            session,
            account_id=account.account_id,
            kind=LedgerEntryKind.EXPIRY,
            points_delta=-points,
            outlet="System",
            note=f"Points expired after {settings.points_expiry_days} days of inactivity",
        )
        notices.append(
            ExpiryNotice(
                account_id=account.account_id,
                points=points,
                last_activity_at=account.last_activity_at,
                expires_on=now,
            )
        )
    return notices


def run_points_expiry(
    session_factory: Callable[[], Session],
    *,
    current_time: datetime | None = None,
    notifier: Optional[Notifier] = None,
    audit_sink: Optional[AuditSink] = None,
    settings: Optional[Settings] = None,
) -> PointsExpirySummary:
    """Send pending warnings, then expire idle balances, each pass in its own transaction.

    Notifications go out only after their pass has committed.
    """

    settings = settings or get_settings()
    now = as_naive_utc(current_time)
    summary = PointsExpirySummary(ran_at=now)

    passes = (
        ("warnings", mark_expiry_warnings),
        ("expiry", expire_inactive_points),
    )
    for name, run_pass in passes:
        session = session_factory()
        try:
            notices = run_pass(session, now=now, settings=settings)
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.exception("points expiry pass %s failed", name)
            summary.errors[name] = str(exc) or exc.__class__.__name__
            continue
        finally:
            session.close()

        for notice in notices:
            if name == "warnings":
                safe_notify(
                    notifier,
                    notice.account_id,
                    WARNING_EVENT,
                    {
                        "points_balance": notice.points,
                        "expiry_date": notice.expires_on.isoformat(),
                        "last_activity": notice.last_activity_at.isoformat(),
                    },
                )
            else:
                safe_notify(
                    notifier,
                    notice.account_id,
                    EXPIRED_EVENT,
                    {
                        "points_expired": notice.points,
                        "expired_at": now.isoformat(),
                        "last_activity": notice.last_activity_at.isoformat(),
                    },
                )

        if name == "warnings":
            summary.warned = len(notices)
        else:
            summary.expired_accounts = len(notices)
            summary.points_expired = sum(notice.points for notice in notices)

    logger.info(
        "points expiry: warned=%s expired=%s points=%s",
        summary.warned,
        summary.expired_accounts,
        summary.points_expired,
    )
    if summary.expired_accounts or summary.errors:
        safe_record(
            audit_sink,
            entity_type="points_expiry",
            entity_id=now.date().isoformat(),
            action="update",
            description="Expired points after inactivity",
            after={
                "warned": summary.warned,
                "expired_accounts": summary.expired_accounts,
                "points_expired": summary.points_expired,
            },
            severity=AuditSeverity.CRITICAL if summary.errors else AuditSeverity.INFO,
            success=not summary.errors,
            details={"ran_at": now.isoformat(), "errors": summary.errors or None},
        )
    return summary
