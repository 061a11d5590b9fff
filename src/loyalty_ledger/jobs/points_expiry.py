"""Daily lapse of points balances left idle too long."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..core.database import SessionLocal
from ..services.audit_service import DatabaseAuditSink
from ..services.notification_service import build_notifier
from ..services.points_expiry_service import PointsExpirySummary, run_points_expiry

logger = logging.getLogger(__name__)


def execute_points_expiry() -> PointsExpirySummary:
    summary = run_points_expiry(
        SessionLocal,
        current_time=datetime.now(timezone.utc),
        notifier=build_notifier(),
        audit_sink=DatabaseAuditSink(SessionLocal),
    )
    if summary.errors:
        logger.error("points expiry finished with failed passes: %s", ", ".join(summary.errors))
    return summary


def run_points_expiry_once(current_time: datetime | None = None) -> PointsExpirySummary:
    """Run the inactivity expiry synchronously, e.g. from a shell or a one-off batch."""

    return run_points_expiry(
        SessionLocal,
        current_time=current_time,
        notifier=build_notifier(),
        audit_sink=DatabaseAuditSink(SessionLocal),
    )


if __name__ == "__main__":
    from ..core.logging_config import setup_logging

    setup_logging()
    result = execute_points_expiry()
    raise SystemExit(1 if result.errors else 0)
