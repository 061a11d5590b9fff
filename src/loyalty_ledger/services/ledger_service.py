"""Append-only ledger with a cached running balance per account.

Balances change only as a side effect of inserting a ledger row, inside the
caller's transaction. The caller owns commit and rollback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..core.errors import AccountNotFound, EntryNotFound, InsufficientBalance, LedgerRuleViolation
from ..models import Account, CreditAccount, CreditType, LedgerEntry, LedgerEntryKind
from ..utils.datetime import next_cycle_end, utcnow

logger = logging.getLogger(__name__)

GRANT_KINDS = (LedgerEntryKind.GRANT, LedgerEntryKind.BIRTHDAY, LedgerEntryKind.STREAK)


@dataclass(frozen=True)
class BalanceReport:
    """Cached balance compared against a replay of the ledger."""

    account_id: int
    cached_balance: int
    ledger_balance: int
    entry_count: int

    @property
    def consistent(self) -> bool:
        return self.cached_balance == self.ledger_balance


def _ensure_account(session: Session, account_id: int) -> Account:
    account = session.get(Account, account_id)
    if account is None:
        raise AccountNotFound(f"Account {account_id} not found")
    return account


def append_entry(
    session: Session,
    *,
    account_id: int,
    kind: LedgerEntryKind,
    points_delta: int,
    amount_value: Optional[Decimal] = None,
    outlet: Optional[str] = None,
    staff_id: Optional[int] = None,
    voucher_id: Optional[int] = None,
    voucher_instance_id: Optional[int] = None,
    reverses_entry_id: Optional[int] = None,
    note: Optional[str] = None,
) -> LedgerEntry:
    """Insert an immutable entry and move the cached points balance by its delta.

    The balance update is guarded in SQL so a concurrent writer can never drive
    it below zero; when the guard fails nothing is written.
    """

    account = _ensure_account(session, account_id)

    stmt = (
        update(Account)
        .where(Account.account_id == account_id)
        .values(points_balance=Account.points_balance + points_delta, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if points_delta < 0:
        stmt = stmt.where(Account.points_balance + points_delta >= 0)

    result = session.execute(stmt)
    if result.rowcount != 1:
        raise InsufficientBalance()

    entry = LedgerEntry(
        account_id=account_id,
        kind=kind,
        points_delta=points_delta,
        amount_value=amount_value,
        outlet=outlet,
        staff_id=staff_id,
        voucher_id=voucher_id,
        voucher_instance_id=voucher_instance_id,
        reverses_entry_id=reverses_entry_id,
        note=note,
    )
    session.add(entry)
    session.flush()

    session.refresh(account, attribute_names=["points_balance", "updated_at"])

    logger.debug("ledger %s %+d for account %s", kind.value, points_delta, account_id)
    return entry


def balance_of(session: Session, account_id: int) -> int:
    """Return the cached points balance."""

    balance = session.execute(
        select(Account.points_balance).where(Account.account_id == account_id)
    ).scalar_one_or_none()
    if balance is None:
        raise AccountNotFound(f"Account {account_id} not found")
    return balance


def replay_balance(session: Session, account_id: int) -> int:
    """Recompute the points balance from the ledger rows alone."""

    stmt = select(func.coalesce(func.sum(LedgerEntry.points_delta), 0)).where(
        LedgerEntry.account_id == account_id,
        LedgerEntry.credit_account_id.is_(None),
    )
    return int(session.execute(stmt).scalar_one())


def verify_balance(session: Session, account_id: int) -> BalanceReport:
    cached = balance_of(session, account_id)
    count = session.execute(
        select(func.count(LedgerEntry.entry_id)).where(
            LedgerEntry.account_id == account_id,
            LedgerEntry.credit_account_id.is_(None),
        )
    ).scalar_one()
    report = BalanceReport(
        account_id=account_id,
        cached_balance=cached,
        ledger_balance=replay_balance(session, account_id),
        entry_count=int(count),
    )
    if not report.consistent:
        logger.error(
            "balance drift on account %s: cached=%s ledger=%s",
            account_id,
            report.cached_balance,
            report.ledger_balance,
        )
    return report


def list_entries(
    session: Session,
    *,
    account_id: int,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[LedgerEntry]:
    """Return an account's ledger history, newest first."""

    _ensure_account(session, account_id)
    stmt = (
        select(LedgerEntry)
        .where(LedgerEntry.account_id == account_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.entry_id.desc())
        .offset(offset)
        .limit(limit)
    )
    return session.execute(stmt).scalars().all()


def grant_points(
    session: Session,
    *,
    account_id: int,
    points: int,
    kind: LedgerEntryKind = LedgerEntryKind.GRANT,
    staff_id: Optional[int] = None,
    note: Optional[str] = None,
) -> LedgerEntry:
    """Credit a manual, birthday or streak reward."""

    if kind not in GRANT_KINDS:
        raise LedgerRuleViolation(f"{kind.value} entries cannot be granted manually.")
    if points <= 0:
        raise LedgerRuleViolation("Granted points must be positive.")
    return append_entry(
        session,
        account_id=account_id,
        kind=kind,
        points_delta=points,
        staff_id=staff_id,
        note=note,
    )


def reverse_entry(
    session: Session,
    *,
    entry_id: int,
    staff_id: Optional[int] = None,
    note: Optional[str] = None,
) -> LedgerEntry:
    """Correct a points entry by appending its negation."""

    original = session.get(LedgerEntry, entry_id)
    if original is None:
        raise EntryNotFound(f"Ledger entry {entry_id} not found")
    if original.credit_account_id is not None:
        raise LedgerRuleViolation("Credit entries are corrected through the credit account.")
    if original.kind is LedgerEntryKind.REVERSAL:
        raise LedgerRuleViolation("A reversal cannot itself be reversed.")

    already = session.execute(
        select(LedgerEntry.entry_id).where(LedgerEntry.reverses_entry_id == entry_id).limit(1)
    ).scalar_one_or_none()
    if already is not None:
        raise LedgerRuleViolation(f"Ledger entry {entry_id} has already been reversed.", status_code=409)

    return append_entry(
        session,
        account_id=original.account_id,
        kind=LedgerEntryKind.REVERSAL,
        points_delta=-original.points_delta,
        amount_value=original.amount_value,
        staff_id=staff_id,
        voucher_id=original.voucher_id,
        reverses_entry_id=original.entry_id,
        note=note or f"Reversal of entry {original.entry_id}",
    )


def append_credit_entry(
    session: Session,
    *,
    credit_account: CreditAccount,
    kind: LedgerEntryKind,
    credits_delta: int,
    amount_value: Optional[Decimal] = None,
    outlet: Optional[str] = None,
    staff_id: Optional[int] = None,
    note: Optional[str] = None,
    allow_negative: bool = False,
) -> LedgerEntry:
    """Move a credit balance by ``credits_delta`` together with its ledger row.

    Only the renewal batch passes ``allow_negative``.
    """

    new_balance = (credit_account.balance or 0) + credits_delta
    if new_balance < 0 and not allow_negative:
        raise InsufficientBalance("Not enough credits remaining for this purchase.")

    credit_account.balance = new_balance
    entry = LedgerEntry(
        account_id=credit_account.account_id,
        credit_account_id=credit_account.credit_account_id,
        kind=kind,
        points_delta=credits_delta,
        amount_value=amount_value,
        outlet=outlet or credit_account.outlet,
        staff_id=staff_id,
        note=note,
    )
    session.add(entry)
    session.flush()
    return entry


def replay_credit_balance(session: Session, credit_account_id: int) -> int:
    stmt = select(func.coalesce(func.sum(LedgerEntry.points_delta), 0)).where(
        LedgerEntry.credit_account_id == credit_account_id
    )
    return int(session.execute(stmt).scalar_one())


def lock_credit_account(session: Session, credit_account_id: int) -> CreditAccount:
    stmt = (
        select(CreditAccount)
        .where(CreditAccount.credit_account_id == credit_account_id)
        .with_for_update()
    )
    credit_account = session.execute(stmt).scalar_one_or_none()
    if credit_account is None:
        raise AccountNotFound(f"Credit account {credit_account_id} not found")
    return credit_account


def allocate_credits(
    session: Session,
    *,
    credit_account_id: int,
    credits: int,
    staff_id: Optional[int] = None,
    note: Optional[str] = None,
) -> LedgerEntry:
    """Admin top-up of a credit account.

    An allocation to an account with no cycle, or one whose cycle has lapsed,
    opens a new cycle ending at the next year end.
    """

    if credits <= 0:
        raise LedgerRuleViolation("Allocated credits must be positive.")
    credit_account = lock_credit_account(session, credit_account_id)
    now = utcnow()
    credit_account.allocated_at = now
    if credit_account.expires_at is None or credit_account.expires_at <= now:
        credit_account.expires_at = next_cycle_end(now)
    return append_credit_entry(
        session,
        credit_account=credit_account,
        kind=LedgerEntryKind.GRANT,
        credits_delta=credits,
        staff_id=staff_id,
        note=note or "Credit allocation",
    )


def consume_credits(
    session: Session,
    *,
    credit_account_id: int,
    credits: int,
    outlet: Optional[str] = None,
    staff_id: Optional[int] = None,
    note: Optional[str] = None,
) -> LedgerEntry:
    """Spend credits at an outlet; media budgets also track yearly spend."""

    if credits <= 0:
        raise LedgerRuleViolation("Consumed credits must be positive.")
    credit_account = lock_credit_account(session, credit_account_id)
    if not credit_account.enabled:
        raise LedgerRuleViolation("This credit account is disabled.")
    if credit_account.expires_at is not None and credit_account.expires_at <= utcnow():
        raise LedgerRuleViolation("These credits have expired.")
    if (
        credit_account.credit_type is CreditType.INVESTOR_OUTLET
        and credit_account.outlet
        and outlet
        and outlet != credit_account.outlet
    ):
        raise LedgerRuleViolation(f"Credits are only valid at {credit_account.outlet}.")

    entry = append_credit_entry(
        session,
        credit_account=credit_account,
        kind=LedgerEntryKind.REDEEM,
        credits_delta=-credits,
        amount_value=Decimal(credits),
        outlet=outlet,
        staff_id=staff_id,
        note=note,
    )
    if credit_account.credit_type is CreditType.MEDIA_BUDGET:
        credit_account.spent_this_year = (credit_account.spent_this_year or 0) + credits
    return entry
