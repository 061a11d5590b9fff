"""Endpoints minting QR tokens for display."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...core.config import get_settings
from ...core.database import get_db
from ...core.errors import AccountNotFound, LedgerRuleViolation
from ...models import Account, VoucherInstanceStatus
from ...schemas import TokenResponse
from ...services import token_service, voucher_service
from .deps import rule_violation_to_http

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.get("/identity/{account_id}", response_model=TokenResponse, summary="Issue an identity token")
def issue_identity(
    account_id: int,
    static: Optional[bool] = Query(None, description="Issue the customer's permanent code without expiry"),
    ttl_seconds: Optional[int] = Query(None, gt=0, le=86400, description="Override the default lifetime"),
    db: Session = Depends(get_db),
) -> TokenResponse:
    """Mint the code a customer shows to earn points.

    A requested ``ttl_seconds`` always wins. Otherwise the code is static when
    ``static`` is set, or when it is omitted and static identity codes are the
    configured default; a non-static code gets the short point-of-sale lifetime.
    """

    try:
        if db.get(Account, account_id) is None:
            raise AccountNotFound()
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc

    if static is None:
        static = get_settings().identity_token_static

    if ttl_seconds:
        issued = token_service.issue_identity_token(account_id, timedelta(seconds=ttl_seconds))
    elif static:
        issued = token_service.issue_identity_token(account_id, None)
    else:
        issued = token_service.issue_identity_token(account_id)
    return TokenResponse(token=issued.token, type=issued.token_type.value, expires_in=issued.expires_in)


@router.get("/voucher/{instance_uuid}", response_model=TokenResponse, summary="Issue a voucher redemption token")
def issue_voucher(
    instance_uuid: UUID,
    db: Session = Depends(get_db),
) -> TokenResponse:
    """Mint the short-lived code naming one claimed voucher instance."""

    try:
        instance = voucher_service.get_instance_by_uuid(db, instance_uuid)
        current = voucher_service.effective_status(instance)
        voucher_service.ensure_transition(current, VoucherInstanceStatus.USED)
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc

    issued = token_service.issue_voucher_token(instance)
    return TokenResponse(token=issued.token, type=issued.token_type.value, expires_in=issued.expires_in)
