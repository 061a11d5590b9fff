"""Balance, ledger and credit account endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.errors import LedgerRuleViolation
from ...models import CreditAccount, LedgerEntryKind
from ...schemas import (
    BalanceRead,
    BalanceVerification,
    CreditAccountRead,
    CreditMovementCreate,
    LedgerEntryRead,
    PointsGrantCreate,
    ReversalCreate,
)
from ...services import ledger_service
from .deps import rule_violation_to_http

router = APIRouter(tags=["ledger"])


@router.get("/accounts/{account_id}/balance", response_model=BalanceRead, summary="Cached points balance")
def get_balance(account_id: int, db: Session = Depends(get_db)) -> BalanceRead:
    try:
        balance = ledger_service.balance_of(db, account_id)
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc
    return BalanceRead(account_id=account_id, points_balance=balance)


@router.get("/accounts/{account_id}/ledger", response_model=List[LedgerEntryRead], summary="Ledger history")
def list_ledger(
    account_id: int,
    limit: int = Query(50, ge=1, le=200, description="Maximum items to return"),
    offset: int = Query(0, ge=0, description="Items to skip for pagination"),
    db: Session = Depends(get_db),
) -> List[LedgerEntryRead]:
    try:
        entries = ledger_service.list_entries(db, account_id=account_id, limit=limit, offset=offset)
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc
    return list(entries)


@router.get(
    "/accounts/{account_id}/ledger/verify",
    response_model=BalanceVerification,
    summary="Compare the cached balance with a ledger replay",
)
def verify_ledger(account_id: int, db: Session = Depends(get_db)) -> BalanceVerification:
    try:
        report = ledger_service.verify_balance(db, account_id)
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc
    return BalanceVerification(
        account_id=report.account_id,
        cached_balance=report.cached_balance,
        ledger_balance=report.ledger_balance,
        entry_count=report.entry_count,
        consistent=report.consistent,
    )


@router.post(
    "/accounts/{account_id}/grants",
    response_model=LedgerEntryRead,
    status_code=status.HTTP_201_CREATED,
    summary="Grant bonus points",
)
def grant_points(account_id: int, payload: PointsGrantCreate, db: Session = Depends(get_db)) -> LedgerEntryRead:
    try:
        entry = ledger_service.grant_points(
            db,
            account_id=account_id,
            points=payload.points,
            kind=LedgerEntryKind(payload.kind),
            staff_id=payload.staff_id,
            note=payload.note,
        )
        db.commit()
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc
    db.refresh(entry)
    return entry


@router.post(
    "/ledger/{entry_id}/reverse",
    response_model=LedgerEntryRead,
    status_code=status.HTTP_201_CREATED,
    summary="Reverse a points entry",
)
def reverse_entry(entry_id: int, payload: ReversalCreate, db: Session = Depends(get_db)) -> LedgerEntryRead:
    try:
        entry = ledger_service.reverse_entry(db, entry_id=entry_id, staff_id=payload.staff_id, note=payload.note)
        db.commit()
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc
    db.refresh(entry)
    return entry


@router.post(
    "/credit-accounts/{credit_account_id}/allocate",
    response_model=CreditAccountRead,
    summary="Allocate credits",
)
def allocate_credits(
    credit_account_id: int,
    payload: CreditMovementCreate,
    db: Session = Depends(get_db),
) -> CreditAccountRead:
    try:
        ledger_service.allocate_credits(
            db,
            credit_account_id=credit_account_id,
            credits=payload.credits,
            staff_id=payload.staff_id,
            note=payload.note,
        )
        db.commit()
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc
    return db.get(CreditAccount, credit_account_id)


@router.post(
    "/credit-accounts/{credit_account_id}/consume",
    response_model=CreditAccountRead,
    summary="Spend credits at an outlet",
)
def consume_credits(
    credit_account_id: int,
    payload: CreditMovementCreate,
    db: Session = Depends(get_db),
) -> CreditAccountRead:
    try:
        ledger_service.consume_credits(
            db,
            credit_account_id=credit_account_id,
            credits=payload.credits,
            outlet=payload.outlet,
            staff_id=payload.staff_id,
            note=payload.note,
        )
        db.commit()
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc
    return db.get(CreditAccount, credit_account_id)
