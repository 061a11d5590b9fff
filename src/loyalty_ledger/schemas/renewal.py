"""Renewal, points expiry and audit schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..models import AuditSeverity


class CategorySummaryRead(BaseModel):
    renewed: int
    expired: int
    credits_delta: int
    error: Optional[str] = None


class RenewalSummaryRead(BaseModel):
    ran_at: datetime
    total_changed: int
    categories: dict[str, CategorySummaryRead]


class AuditRecordRead(BaseModel):
    audit_id: int
    entity_type: str
    entity_id: Optional[str] = None
    action: str
    description: Optional[str] = None
    staff_id: Optional[int] = None
    changes: Optional[dict[str, Any]] = None
    severity: AuditSeverity
    success: bool
    created_at: datetime

    class Config:
        from_attributes = True


class PointsExpirySummaryRead(BaseModel):
    ran_at: datetime
    warned: int
    expired_accounts: int
    points_expired: int
    errors: dict[str, str] = Field(default_factory=dict)
