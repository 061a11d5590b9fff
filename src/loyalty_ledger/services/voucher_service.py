"""Voucher claims and the voucher instance lifecycle.

An instance is ``active`` until it is consumed at the point of sale (``used``)
or its ``expires_at`` passes (``expired``). Both terminal states are final.
Expiry is derived at read time from ``expires_at``; the stored row is only
rewritten to ``expired`` by the renewal batch sweep.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload

from ..core.config import get_settings
from ..core.errors import (
    AccountNotFound,
    AlreadyUsed,
    Expired,
    IllegalTransition,
    InstanceNotFound,
    VoucherNotFound,
    VoucherUnavailable,
)
from ..models import (
    Account,
    LedgerEntryKind,
    Voucher,
    VoucherExpiryType,
    VoucherInstance,
    VoucherInstanceStatus,
)
from ..utils.datetime import as_naive_utc
from . import ledger_service

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[VoucherInstanceStatus, frozenset[VoucherInstanceStatus]] = {
    VoucherInstanceStatus.ACTIVE: frozenset({VoucherInstanceStatus.USED, VoucherInstanceStatus.EXPIRED}),
    VoucherInstanceStatus.USED: frozenset(),
    VoucherInstanceStatus.EXPIRED: frozenset(),
}


def can_transition(current: VoucherInstanceStatus, target: VoucherInstanceStatus) -> bool:
    return target in _TRANSITIONS[current]


def ensure_transition(current: VoucherInstanceStatus, target: VoucherInstanceStatus) -> None:
    """Raise the error a point-of-sale caller should see for an illegal move."""

    if can_transition(current, target):
        return
    if current is VoucherInstanceStatus.USED:
        raise AlreadyUsed()
    if current is VoucherInstanceStatus.EXPIRED:
        raise Expired()
    raise IllegalTransition(f"Cannot move a voucher from {current.value} to {target.value}.")


def is_past_expiry(instance: VoucherInstance, now: Optional[datetime] = None) -> bool:
    return as_naive_utc(now) > instance.expires_at


def effective_status(instance: VoucherInstance, now: Optional[datetime] = None) -> VoucherInstanceStatus:
    """Stored terminal state wins; an active row past its expiry reads as expired."""

    if instance.status is not VoucherInstanceStatus.ACTIVE:
        return instance.status
    if is_past_expiry(instance, now):
        return VoucherInstanceStatus.EXPIRED
    return VoucherInstanceStatus.ACTIVE


def compute_instance_expiry(voucher: Voucher, claimed_at: datetime) -> datetime:
    """Instance expiry from the voucher's policy, never later than the catalog expiry."""

    if voucher.expiry_type is VoucherExpiryType.DAYS_AFTER_CLAIM and voucher.expiry_days:
        expires_at = claimed_at + timedelta(days=voucher.expiry_days)
    elif voucher.expiry_type is VoucherExpiryType.FIXED_DATE and voucher.expires_at:
        expires_at = voucher.expires_at
    else:
        expires_at = claimed_at + timedelta(hours=get_settings().default_voucher_validity_hours)

    if voucher.expires_at is not None and voucher.expires_at < expires_at:
        expires_at = voucher.expires_at
    return expires_at


def claim_voucher(
    session: Session,
    *,
    account_id: int,
    voucher_id: int,
    now: Optional[datetime] = None,
    charge_points: bool = True,
) -> VoucherInstance:
    """Create an active instance, paying the voucher's points cost up front."""

    now = as_naive_utc(now)
    if session.get(Account, account_id) is None:
        raise AccountNotFound(f"Account {account_id} not found")

    voucher = session.get(Voucher, voucher_id)
    if voucher is None:
        raise VoucherNotFound(f"Voucher {voucher_id} not found")
    if not voucher.is_active:
        raise VoucherUnavailable()
    if voucher.expires_at is not None and voucher.expires_at <= now:
        raise VoucherUnavailable("This voucher is no longer available.")

    instance = VoucherInstance(
        account_id=account_id,
        voucher_id=voucher.voucher_id,
        status=VoucherInstanceStatus.ACTIVE,
        claimed_at=now,
        expires_at=compute_instance_expiry(voucher, now),
    )
    session.add(instance)
    session.flush()

    if charge_points and voucher.points_required > 0:
        ledger_service.append_entry(
            session,
            account_id=account_id,
            kind=LedgerEntryKind.REDEEM,
            points_delta=-voucher.points_required,
            amount_value=voucher.cash_value,
            voucher_id=voucher.voucher_id,
            voucher_instance_id=instance.instance_id,
            note=f"Claimed {voucher.title}",
        )

    logger.info("account %s claimed voucher %s as %s", account_id, voucher_id, instance.uuid)
    return instance


def get_instance_by_uuid(session: Session, instance_uuid: UUID, *, for_update: bool = False) -> VoucherInstance:
    stmt = (
        select(VoucherInstance)
        .options(joinedload(VoucherInstance.voucher))
        .where(VoucherInstance.uuid == instance_uuid)
    )
    if for_update:
        stmt = stmt.with_for_update(of=VoucherInstance)
    instance = session.execute(stmt).unique().scalar_one_or_none()
    if instance is None:
        raise InstanceNotFound()
    return instance


def mark_used(
    session: Session,
    *,
    instance: VoucherInstance,
    staff_id: int,
    outlet: str,
    now: Optional[datetime] = None,
) -> VoucherInstance:
    """Move an instance from active to used exactly once.

    The write is conditioned on the row still being active, so of two
    concurrent scans only one updates a row; the other gets ``AlreadyUsed``.
    """

    now = as_naive_utc(now)
    ensure_transition(instance.status, VoucherInstanceStatus.USED)
    if is_past_expiry(instance, now):
        raise Expired()

    result = session.execute(
        update(VoucherInstance)
        .where(
            VoucherInstance.instance_id == instance.instance_id,
            VoucherInstance.status == VoucherInstanceStatus.ACTIVE,
        )
        .values(
            status=VoucherInstanceStatus.USED,
            used_at=now,
            used_by_staff_id=staff_id,
            used_at_outlet=outlet,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.refresh(instance)
        ensure_transition(instance.status, VoucherInstanceStatus.USED)
        raise AlreadyUsed()

    session.refresh(instance)
    return instance


def list_instances(
    session: Session,
    *,
    account_id: int,
    status: Optional[VoucherInstanceStatus] = None,
    now: Optional[datetime] = None,
) -> list[tuple[VoucherInstance, VoucherInstanceStatus]]:
    """Return an account's instances with their derived status."""

    now = as_naive_utc(now)
    if session.get(Account, account_id) is None:
        raise AccountNotFound(f"Account {account_id} not found")

    stmt = (
        select(VoucherInstance)
        .options(joinedload(VoucherInstance.voucher))
        .where(VoucherInstance.account_id == account_id)
        .order_by(VoucherInstance.claimed_at.desc(), VoucherInstance.instance_id.desc())
    )
    instances: Sequence[VoucherInstance] = session.execute(stmt).unique().scalars().all()
    rows = [(instance, effective_status(instance, now)) for instance in instances]
    if status is not None:
        rows = [row for row in rows if row[1] is status]
    return rows


def expire_overdue_instances(session: Session, *, now: Optional[datetime] = None) -> int:
    """Persist the expired state for active instances past their expiry."""

    now = as_naive_utc(now)
    result = session.execute(
        update(VoucherInstance)
        .where(
            VoucherInstance.status == VoucherInstanceStatus.ACTIVE,
            VoucherInstance.expires_at < now,
        )
        .values(status=VoucherInstanceStatus.EXPIRED, expired_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
