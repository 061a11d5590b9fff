"""Voucher claim and instance endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.errors import LedgerRuleViolation
from ...models import VoucherInstance, VoucherInstanceStatus
from ...schemas import VoucherClaimCreate, VoucherInstanceRead, VoucherRead
from ...services import voucher_service
from .deps import rule_violation_to_http

router = APIRouter(tags=["vouchers"])


def _to_read(instance: VoucherInstance, current: VoucherInstanceStatus) -> VoucherInstanceRead:
    return VoucherInstanceRead(
        instance_id=instance.instance_id,
        uuid=instance.uuid,
        account_id=instance.account_id,
        voucher=VoucherRead.model_validate(instance.voucher),
        status=current.value,
        stored_status=instance.status.value,
        claimed_at=instance.claimed_at,
        expires_at=instance.expires_at,
        used_at=instance.used_at,
        used_by_staff_id=instance.used_by_staff_id,
        used_at_outlet=instance.used_at_outlet,
    )


@router.post(
    "/vouchers/claim",
    response_model=VoucherInstanceRead,
    status_code=status.HTTP_201_CREATED,
    summary="Claim a voucher with points",
    responses={
        400: {"description": "Insufficient points or voucher unavailable"},
        404: {"description": "Account or voucher not found"},
    },
)
def claim_voucher(payload: VoucherClaimCreate, db: Session = Depends(get_db)) -> VoucherInstanceRead:
    """Deduct the voucher's points cost and create an active instance."""

    try:
        instance = voucher_service.claim_voucher(db, account_id=payload.account_id, voucher_id=payload.voucher_id)
        db.commit()
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc

    db.refresh(instance)
    return _to_read(instance, voucher_service.effective_status(instance))


@router.get(
    "/accounts/{account_id}/voucher-instances",
    response_model=List[VoucherInstanceRead],
    summary="List an account's vouchers",
)
def list_voucher_instances(
    account_id: int,
    status_filter: Optional[VoucherInstanceStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
) -> List[VoucherInstanceRead]:
    """Expired is reported for active instances past their expiry without rewriting them."""

    try:
        rows = voucher_service.list_instances(db, account_id=account_id, status=status_filter)
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc
    return [_to_read(instance, current) for instance, current in rows]
