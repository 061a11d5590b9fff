from datetime import datetime, timedelta

import pytest

from conftest import FailingAuditSink
from loyalty_ledger.models import AuditSeverity, CreditType, LedgerEntry, LedgerEntryKind, VoucherInstanceStatus
from loyalty_ledger.services import audit_service, ledger_service, renewal_service, voucher_service
from loyalty_ledger.utils.datetime import next_cycle_end, utcnow


def _credit_entries(db_session, credit_account):
    return (
        db_session.query(LedgerEntry)
        .filter(LedgerEntry.credit_account_id == credit_account.credit_account_id)
        .order_by(LedgerEntry.entry_id)
        .all()
    )


def test_due_rows_are_renewed_or_expired(session_factory, db_session, make_credit_account, audit_sink):
    renewing = make_credit_account(CreditType.INVESTOR_OUTLET, balance=30, annual_allocation=500, auto_renew=True, outlet="Central")
    lapsing = make_credit_account(CreditType.INVESTOR_GROUP, balance=80, annual_allocation=200)
    empty = make_credit_account(CreditType.INVESTOR_GROUP, balance=0, annual_allocation=200)
    media = make_credit_account(CreditType.MEDIA_BUDGET, balance=600, annual_allocation=1000)
    media.spent_this_year = 400
    db_session.commit()
    now = utcnow()

    summary = renewal_service.run_annual_renewal(session_factory, current_time=now, audit_sink=audit_sink)

    assert summary.failed == []
    assert summary.categories["investor_outlet"].renewed == 1
    assert summary.categories["investor_outlet"].credits_delta == 470
    assert summary.categories["investor_group"].expired == 1
    assert summary.categories["investor_group"].credits_delta == -80
    assert summary.categories["media_budget"].renewed == 1
    assert summary.total_changed == 3

    for row in (renewing, lapsing, empty, media):
        db_session.refresh(row)
    assert renewing.balance == 500
    assert renewing.expires_at == next_cycle_end(now)
    assert lapsing.balance == 0
    assert empty.balance == 0
    assert _credit_entries(db_session, empty) == []
    assert media.balance == 1000
    assert media.spent_this_year == 0

    renewal_entry = _credit_entries(db_session, renewing)[-1]
    assert renewal_entry.kind is LedgerEntryKind.RENEWAL
    assert renewal_entry.points_delta == 470
    expiry_entry = _credit_entries(db_session, lapsing)[-1]
    assert expiry_entry.kind is LedgerEntryKind.EXPIRY
    assert expiry_entry.points_delta == -80

    assert {record["entity_id"] for record in audit_sink.records} == {
        "investor_outlet",
        "investor_group",
        "media_budget",
    }
    assert all(record["severity"] is AuditSeverity.INFO for record in audit_sink.records)


def test_second_run_changes_nothing(session_factory, db_session, make_credit_account):
    make_credit_account(CreditType.INVESTOR_OUTLET, balance=10, annual_allocation=100, auto_renew=True)
    make_credit_account(CreditType.INVESTOR_GROUP, balance=50, annual_allocation=100)
    make_credit_account(CreditType.MEDIA_BUDGET, balance=0, annual_allocation=300)
    now = utcnow()

    first = renewal_service.run_annual_renewal(session_factory, current_time=now)
    second = renewal_service.run_annual_renewal(session_factory, current_time=now)
    later = renewal_service.run_annual_renewal(session_factory, current_time=now + timedelta(hours=6))

    assert first.total_changed == 3
    assert second.total_changed == 0
    assert later.total_changed == 0
    assert db_session.query(LedgerEntry).count() == 3


def test_rows_not_yet_due_or_disabled_are_skipped(session_factory, db_session, make_credit_account):
    future = make_credit_account(
        CreditType.INVESTOR_OUTLET, balance=10, annual_allocation=100, auto_renew=True, expires_in=timedelta(days=30)
    )
    unscheduled = make_credit_account(CreditType.INVESTOR_OUTLET, balance=10, annual_allocation=100, auto_renew=True, expires_in=None)
    disabled = make_credit_account(CreditType.MEDIA_BUDGET, balance=5, annual_allocation=100)
    disabled.enabled = False
    db_session.commit()

    summary = renewal_service.run_annual_renewal(session_factory, current_time=utcnow())

    assert summary.total_changed == 0
    for row in (future, unscheduled, disabled):
        db_session.refresh(row)
    assert (future.balance, unscheduled.balance, disabled.balance) == (10, 10, 5)


def test_failed_category_rolls_back_and_run_continues(monkeypatch, session_factory, db_session, make_credit_account, audit_sink):
    group = make_credit_account(CreditType.INVESTOR_GROUP, balance=70, annual_allocation=300, auto_renew=True)
    media = make_credit_account(CreditType.MEDIA_BUDGET, balance=0, annual_allocation=1000)
    original_expiry = group.expires_at

    def half_done(session, now):
        renewal_service.renew_credit_accounts(session, CreditType.INVESTOR_GROUP, now=now)
        raise RuntimeError("connection lost mid-category")

    monkeypatch.setitem(renewal_service._CATEGORY_RUNNERS, "investor_group", half_done)

    summary = renewal_service.run_annual_renewal(session_factory, current_time=utcnow(), audit_sink=audit_sink)

    assert summary.failed == ["investor_group"]
    assert "connection lost" in summary.categories["investor_group"].error
    assert summary.categories["media_budget"].renewed == 1

    db_session.refresh(group)
    db_session.refresh(media)
    assert group.balance == 70
    assert group.expires_at == original_expiry
    assert _credit_entries(db_session, group) == []
    assert media.balance == 1000

    failure = next(record for record in audit_sink.records if record["entity_id"] == "investor_group")
    assert failure["success"] is False
    assert failure["severity"] is AuditSeverity.CRITICAL


def test_audit_failure_does_not_stop_later_categories(session_factory, db_session, make_credit_account):
    outlet = make_credit_account(CreditType.INVESTOR_OUTLET, balance=20, annual_allocation=300, auto_renew=True, outlet="Central")
    media = make_credit_account(CreditType.MEDIA_BUDGET, balance=50, annual_allocation=900)

    summary = renewal_service.run_annual_renewal(session_factory, current_time=utcnow(), audit_sink=FailingAuditSink())

    assert summary.failed == []
    assert summary.categories["investor_outlet"].renewed == 1
    assert summary.categories["media_budget"].renewed == 1
    assert "voucher_expiry" in summary.categories

    db_session.refresh(outlet)
    db_session.refresh(media)
    assert outlet.balance == 300
    assert media.balance == 900


def test_safe_record_reports_sink_failures():
    assert audit_service.safe_record(None, entity_type="credit_renewal", entity_id="x") is False
    assert audit_service.safe_record(FailingAuditSink(), entity_type="credit_renewal", entity_id="x") is False


def test_allocation_after_lapse_opens_a_new_cycle(session_factory, db_session, make_credit_account):
    group = make_credit_account(CreditType.INVESTOR_GROUP, balance=80, annual_allocation=200)
    renewal_service.run_annual_renewal(session_factory, current_time=utcnow())
    db_session.refresh(group)
    assert group.balance == 0
    assert group.expires_at <= utcnow()

    before = utcnow()
    ledger_service.allocate_credits(db_session, credit_account_id=group.credit_account_id, credits=200)
    db_session.commit()
    db_session.refresh(group)
    assert group.expires_at > before
    assert group.expires_at in (next_cycle_end(before), next_cycle_end(utcnow()))

    ledger_service.consume_credits(db_session, credit_account_id=group.credit_account_id, credits=10)
    db_session.commit()
    db_session.refresh(group)
    assert group.balance == 190

    rerun = renewal_service.run_annual_renewal(session_factory, current_time=utcnow())
    assert rerun.total_changed == 0
    db_session.refresh(group)
    assert group.balance == 190


def test_overdue_voucher_instances_are_swept(session_factory, db_session, customer, voucher):
    ledger_service.grant_points(db_session, account_id=customer.account_id, points=200)
    stale = voucher_service.claim_voucher(
        db_session,
        account_id=customer.account_id,
        voucher_id=voucher.voucher_id,
        now=utcnow() - timedelta(days=30),
    )
    fresh = voucher_service.claim_voucher(db_session, account_id=customer.account_id, voucher_id=voucher.voucher_id)
    db_session.commit()

    summary = renewal_service.run_annual_renewal(session_factory, categories=("voucher_expiry",))

    assert summary.categories["voucher_expiry"].expired == 1
    db_session.refresh(stale)
    db_session.refresh(fresh)
    assert stale.status is VoucherInstanceStatus.EXPIRED
    assert fresh.status is VoucherInstanceStatus.ACTIVE


@pytest.mark.parametrize(
    "now,expected",
    [
        (datetime(2030, 1, 1, 0, 5), datetime(2030, 12, 31, 23, 59, 59)),
        (datetime(2030, 12, 31, 23, 59, 59), datetime(2031, 12, 31, 23, 59, 59)),
        (datetime(2030, 6, 15, 12, 0), datetime(2030, 12, 31, 23, 59, 59)),
    ],
)
def test_next_cycle_end(now, expected):
    assert next_cycle_end(now) == expected
