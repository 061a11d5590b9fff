"""Scheduled jobs."""

from .annual_renewal import run_renewal_once
from .points_expiry import run_points_expiry_once
from .scheduler import register_scheduler

__all__ = ["register_scheduler", "run_points_expiry_once", "run_renewal_once"]
