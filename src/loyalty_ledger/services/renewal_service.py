"""Annual renewal of investor credits and media budgets.

Each category is reconciled in its own transaction. Whether a row is due is
decided from the row's own ``expires_at`` against ``now``, so the batch can be
retried or run by hand without renewing anything twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..models import AuditSeverity, CreditAccount, CreditType, LedgerEntryKind
from ..utils.datetime import as_naive_utc, next_cycle_end
from . import ledger_service, voucher_service
from .audit_service import AuditSink, safe_record

logger = logging.getLogger(__name__)

CATEGORIES = ("investor_outlet", "investor_group", "media_budget", "voucher_expiry")


@dataclass
class CategorySummary:
    renewed: int = 0
    expired: int = 0
    credits_delta: int = 0
    error: Optional[str] = None

    @property
    def changed(self) -> int:
        return self.renewed + self.expired


@dataclass
class RenewalSummary:
    ran_at: datetime
    categories: dict[str, CategorySummary] = field(default_factory=dict)

    @property
    def total_changed(self) -> int:
        return sum(summary.changed for summary in self.categories.values())

    @property
    def failed(self) -> list[str]:
        return [name for name, summary in self.categories.items() if summary.error]


def _due_credit_accounts(session: Session, credit_type: CreditType, now: datetime) -> list[CreditAccount]:
    stmt = (
        select(CreditAccount)
        .where(
            CreditAccount.credit_type == credit_type,
            CreditAccount.enabled.is_(True),
            CreditAccount.expires_at.is_not(None),
            CreditAccount.expires_at <= now,
        )
        .order_by(CreditAccount.credit_account_id)
        .with_for_update()
    )
    if credit_type is CreditType.MEDIA_BUDGET:
        stmt = stmt.where(CreditAccount.annual_allocation > 0)
    else:
        stmt = stmt.where(or_(CreditAccount.auto_renew.is_(True), CreditAccount.balance != 0))
    return list(session.execute(stmt).scalars().all())


def renew_credit_accounts(session: Session, credit_type: CreditType, *, now: datetime) -> CategorySummary:
    """Renew or expire every due row of one credit category."""

    summary = CategorySummary()
    new_expiry = next_cycle_end(now)
    always_renew = credit_type is CreditType.MEDIA_BUDGET

    for credit_account in _due_credit_accounts(session, credit_type, now):
        previous = credit_account.balance or 0
        if always_renew or credit_account.auto_renew:
            delta = credit_account.annual_allocation - previous
            ledger_service.append_credit_entry(
                session,
                credit_account=credit_account,
                kind=LedgerEntryKind.RENEWAL,
                credits_delta=delta,
                amount_value=Decimal(credit_account.annual_allocation),
                note="Annual media budget reset" if always_renew else "Annual credit renewal",
                allow_negative=True,
            )
            credit_account.allocated_at = now
            credit_account.expires_at = new_expiry
            if always_renew:
                credit_account.spent_this_year = 0
            summary.renewed += 1
        else:
            delta = -previous
            ledger_service.append_credit_entry(
                session,
                credit_account=credit_account,
                kind=LedgerEntryKind.EXPIRY,
                credits_delta=delta,
                note="Annual credit expiry (no auto-renew)",
                allow_negative=True,
            )
            summary.expired += 1
        summary.credits_delta += delta

    session.flush()
    return summary


def expire_voucher_instances(session: Session, *, now: datetime) -> CategorySummary:
    return CategorySummary(expired=voucher_service.expire_overdue_instances(session, now=now))


_CATEGORY_RUNNERS: dict[str, Callable[[Session, datetime], CategorySummary]] = {
    "investor_outlet": lambda session, now: renew_credit_accounts(session, CreditType.INVESTOR_OUTLET, now=now),
    "investor_group": lambda session, now: renew_credit_accounts(session, CreditType.INVESTOR_GROUP, now=now),
    "media_budget": lambda session, now: renew_credit_accounts(session, CreditType.MEDIA_BUDGET, now=now),
    "voucher_expiry": lambda session, now: expire_voucher_instances(session, now=now),
}


def run_annual_renewal(
    session_factory: Callable[[], Session],
    *,
    current_time: datetime | None = None,
    audit_sink: Optional[AuditSink] = None,
    categories: tuple[str, ...] = CATEGORIES,
) -> RenewalSummary:
    """Run every category in its own transaction and report what changed.

    A failing category is rolled back as a whole and the run moves on.
    """

    now = as_naive_utc(current_time)
    summary = RenewalSummary(ran_at=now)

    for name in categories:
        runner = _CATEGORY_RUNNERS[name]
        session = session_factory()
        try:
            category_summary = runner(session, now)
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.exception("annual renewal category %s failed", name)
            category_summary = CategorySummary(error=str(exc) or exc.__class__.__name__)
        finally:
            session.close()

        summary.categories[name] = category_summary
        logger.info(
            "annual renewal %s: renewed=%s expired=%s delta=%s",
            name,
            category_summary.renewed,
            category_summary.expired,
            category_summary.credits_delta,
        )
        if category_summary.changed or category_summary.error:
            safe_record(
                audit_sink,
                entity_type="credit_renewal",
                entity_id=name,
                action="update",
                description=f"Annual renewal of {name}",
                after={
                    "renewed": category_summary.renewed,
                    "expired": category_summary.expired,
                    "credits_delta": category_summary.credits_delta,
                },
                severity=AuditSeverity.CRITICAL if category_summary.error else AuditSeverity.INFO,
                success=category_summary.error is None,
                details={"ran_at": now.isoformat(), "error": category_summary.error},
            )

    return summary
