"""Point-of-sale scan handling: award points or consume a voucher instance."""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Iterator, Optional, Union

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.errors import (
    AccountNotFound,
    AlreadyUsed,
    Expired,
    InvalidAmount,
    LedgerRuleViolation,
    StorageUnavailable,
    TokenInvalid,
)
from ..models import Account, AuditSeverity, LedgerEntryKind, VoucherInstanceStatus
from ..utils.datetime import as_naive_utc
from . import ledger_service, token_service, voucher_service
from .audit_service import AuditSink, safe_record
from .notification_service import Notifier, safe_notify
from .token_service import TokenClaims, TokenType

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError)

# Largest value that fits Numeric(12, 2).
MAX_AMOUNT = Decimal("9999999999.99")


class ScanOutcome(str, enum.Enum):
    POINTS_AWARDED = "points_awarded"
    VOUCHER_USED = "voucher_used"


@dataclass(frozen=True)
class ScanResult:
    outcome: ScanOutcome
    customer_id: int
    customer_name: str
    new_balance: int
    points_awarded: int = 0
    amount_spent: Optional[Decimal] = None
    voucher_id: Optional[int] = None
    voucher_title: Optional[str] = None
    voucher_type: Optional[str] = None
    value: Optional[Decimal] = None
    ledger_entry_id: Optional[int] = None


def points_for_amount(amount: Decimal, units_per_point: Optional[int] = None) -> int:
    """Whole points earned for a purchase amount, rounded down."""

    units_per_point = units_per_point or get_settings().currency_units_per_point
    return int((amount / units_per_point).to_integral_value(rounding=ROUND_FLOOR))


def _coerce_amount(amount: Union[Decimal, int, float, str, None]) -> Decimal:
    if amount is None:
        raise InvalidAmount("Please enter the purchase amount to award loyalty points.")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount() from exc
    if not value.is_finite() or value <= 0:
        raise InvalidAmount("Please enter the purchase amount to award loyalty points.")
    if value > MAX_AMOUNT:
        raise InvalidAmount("This purchase amount is too large. Please check the amount and try again.")
    return value


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Commit on success, roll back everything on any failure."""

    try:
        yield session
        session.commit()
    except LedgerRuleViolation:
        session.rollback()
        raise
    except sa_exc.DataError as exc:
        session.rollback()
        logger.warning("rejected out-of-range value during scan: %s", exc)
        raise InvalidAmount() from exc
    except _STORAGE_ERRORS as exc:
        session.rollback()
        logger.warning("storage unavailable during scan: %s", exc)
        raise StorageUnavailable() from exc
    except Exception:
        session.rollback()
        raise


def process_pos_scan(
    session: Session,
    *,
    token: str,
    outlet: str,
    staff_id: int,
    amount: Union[Decimal, int, float, str, None] = None,
    audit_sink: Optional[AuditSink] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> ScanResult:
    """Verify a scanned token and apply the action it authorises.

    Token failures happen before any database work. Everything else runs in a
    single atomic unit; audit and notification follow the commit and cannot
    change the result.
    """

    claims = token_service.verify_token(token)

    if claims.token_type is TokenType.IDENTITY:
        return _award_points(
            session,
            claims=claims,
            amount=amount,
            outlet=outlet,
            staff_id=staff_id,
            audit_sink=audit_sink,
            now=as_naive_utc(now),
        )
    return _redeem_voucher(
        session,
        claims=claims,
        outlet=outlet,
        staff_id=staff_id,
        audit_sink=audit_sink,
        notifier=notifier,
        now=as_naive_utc(now),
    )


def _award_points(
    session: Session,
    *,
    claims: TokenClaims,
    amount,
    outlet: str,
    staff_id: int,
    audit_sink: Optional[AuditSink],
    now: datetime,
) -> ScanResult:
    value = _coerce_amount(amount)
    points = points_for_amount(value)

    with atomic(session):
        account = session.get(Account, claims.customer_id, with_for_update=True)
        if account is None:
            raise AccountNotFound()
        balance_before = account.points_balance
        account.last_activity_at = now

        entry = ledger_service.append_entry(
            session,
            account_id=account.account_id,
            kind=LedgerEntryKind.EARN,
            points_delta=points,
            amount_value=value,
            outlet=outlet,
            staff_id=staff_id,
        )
        account.total_spend = Account.total_spend + value
        account.total_purchases_count = Account.total_purchases_count + 1
        session.flush()
        session.refresh(account)
        result = ScanResult(
            outcome=ScanOutcome.POINTS_AWARDED,
            customer_id=account.account_id,
            customer_name=account.display_name,
            new_balance=account.points_balance,
            points_awarded=points,
            amount_spent=value,
            ledger_entry_id=entry.entry_id,
        )

    logger.info(
        "awarded %s points to account %s at %s (staff %s)",
        points,
        result.customer_id,
        outlet,
        staff_id,
    )
    safe_record(
        audit_sink,
        entity_type="transaction",
        entity_id=result.ledger_entry_id,
        action="create",
        description=f"Awarded {points} points for purchase of {value} at {outlet}",
        before={"points_balance": balance_before},
        after={"points_balance": result.new_balance},
        staff_id=staff_id,
        details={"account_id": result.customer_id, "outlet": outlet},
    )
    return result


def _redeem_voucher(
    session: Session,
    *,
    claims: TokenClaims,
    outlet: str,
    staff_id: int,
    audit_sink: Optional[AuditSink],
    notifier: Optional[Notifier],
    now: datetime,
) -> ScanResult:
    try:
        with atomic(session):
            instance = voucher_service.get_instance_by_uuid(
                session, claims.voucher_instance_id, for_update=True
            )
            if instance.account_id != claims.customer_id or instance.voucher_id != claims.voucher_id:
                raise TokenInvalid("This QR code does not match the voucher on record.")

            account = session.get(Account, instance.account_id)
            if account is None:
                raise AccountNotFound()
            voucher = instance.voucher

            voucher_service.mark_used(session, instance=instance, staff_id=staff_id, outlet=outlet, now=now)
            account.last_activity_at = now
            entry = ledger_service.append_entry(
                session,
                account_id=account.account_id,
                kind=LedgerEntryKind.USE,
                points_delta=0,
                amount_value=voucher.cash_value,
                outlet=outlet,
                staff_id=staff_id,
                voucher_id=voucher.voucher_id,
                voucher_instance_id=instance.instance_id,
            )
            result = ScanResult(
                outcome=ScanOutcome.VOUCHER_USED,
                customer_id=account.account_id,
                customer_name=account.display_name,
                new_balance=account.points_balance,
                voucher_id=voucher.voucher_id,
                voucher_title=voucher.title,
                voucher_type=voucher.voucher_type,
                value=voucher.cash_value,
                ledger_entry_id=entry.entry_id,
            )
    except (AlreadyUsed, Expired) as exc:
        safe_record(
            audit_sink,
            entity_type="voucher",
            entity_id=str(claims.voucher_instance_id),
            action="redeem",
            description=f"Rejected voucher scan at {outlet}: {exc.code}",
            severity=AuditSeverity.WARNING,
            success=False,
            staff_id=staff_id,
            details={"account_id": claims.customer_id, "outlet": outlet},
        )
        raise

    logger.info(
        "voucher instance %s used by account %s at %s (staff %s)",
        claims.voucher_instance_id,
        result.customer_id,
        outlet,
        staff_id,
    )
    safe_record(
        audit_sink,
        entity_type="voucher",
        entity_id=str(claims.voucher_instance_id),
        action="redeem",
        description=f"REDEEM voucher: {result.voucher_title}",
        before={"status": VoucherInstanceStatus.ACTIVE.value},
        after={"status": VoucherInstanceStatus.USED.value, "used_at_outlet": outlet},
        staff_id=staff_id,
        details={"account_id": result.customer_id, "ledger_entry_id": result.ledger_entry_id},
    )
    safe_notify(
        notifier,
        result.customer_id,
        "voucher_redeemed",
        {
            "voucher_id": result.voucher_id,
            "voucher_title": result.voucher_title,
            "voucher_type": result.voucher_type,
            "cash_value": str(result.value) if result.value is not None else None,
            "used_at": now.isoformat(),
            "outlet": outlet,
        },
    )
    return result
