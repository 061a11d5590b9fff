"""Annual credit renewal run by the scheduler or by hand."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..core.database import SessionLocal
from ..services.audit_service import DatabaseAuditSink
from ..services.renewal_service import RenewalSummary, run_annual_renewal

logger = logging.getLogger(__name__)


def execute_annual_renewal() -> RenewalSummary:
    summary = run_annual_renewal(
        SessionLocal,
        current_time=datetime.now(timezone.utc),
        audit_sink=DatabaseAuditSink(SessionLocal),
    )
    if summary.failed:
        logger.error("annual renewal finished with failed categories: %s", ", ".join(summary.failed))
    else:
        logger.info("annual renewal completed: %s changes", summary.total_changed)
    return summary


def run_renewal_once(current_time: datetime | None = None) -> RenewalSummary:
    """Convenience helper to run the renewal synchronously for manual testing."""

    return run_annual_renewal(
        SessionLocal,
        current_time=current_time,
        audit_sink=DatabaseAuditSink(SessionLocal),
    )


if __name__ == "__main__":
    from ..core.logging_config import setup_logging

    setup_logging()
    result = execute_annual_renewal()
    raise SystemExit(1 if result.failed else 0)
