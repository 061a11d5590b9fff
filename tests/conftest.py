import os
from datetime import timedelta
from decimal import Decimal

os.environ.setdefault("LOYALTY_DATABASE_URL", "sqlite://")
os.environ.setdefault("LOYALTY_TOKEN_SECRET", "test-secret-for-pos-tokens")
os.environ.setdefault("LOYALTY_SCHEDULER_ENABLED", "false")

import pytest

from loyalty_ledger.core.database import Base, build_engine, build_session_factory
from loyalty_ledger.models import (
    Account,
    AccountType,
    CreditAccount,
    CreditType,
    Voucher,
    VoucherExpiryType,
)
from loyalty_ledger.utils.datetime import utcnow


class RecordingAuditSink:
    def __init__(self):
        self.records = []

    def record(self, **kwargs):
        self.records.append(kwargs)


class FailingAuditSink:
    def record(self, **kwargs):
        raise RuntimeError("audit store offline")


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, account_id, event, payload):
        self.sent.append((account_id, event, payload))


class FailingNotifier:
    def notify(self, account_id, event, payload):
        raise ConnectionError("push gateway unreachable")


@pytest.fixture
def engine(tmp_path):
    # File-backed so that several sessions see each other's commits.
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def customer(db_session):
    account = Account(display_name="Nok Chaiyaporn", phone="0812345678", account_type=AccountType.CUSTOMER)
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture
def voucher(db_session):
    item = Voucher(
        title="Free Iced Latte",
        voucher_type="free_item",
        points_required=100,
        cash_value=Decimal("120.00"),
        expiry_type=VoucherExpiryType.DAYS_AFTER_CLAIM,
        expiry_days=7,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture
def make_credit_account(db_session):
    def _make(credit_type, *, balance=0, annual_allocation=0, auto_renew=False, expires_in=timedelta(days=-1), outlet=None):
        owner = Account(
            display_name=f"{credit_type.value} holder",
            account_type=AccountType.MEDIA if credit_type is CreditType.MEDIA_BUDGET else AccountType.INVESTOR,
        )
        db_session.add(owner)
        db_session.flush()
        credit_account = CreditAccount(
            account_id=owner.account_id,
            credit_type=credit_type,
            outlet=outlet,
            balance=balance,
            annual_allocation=annual_allocation,
            auto_renew=auto_renew,
            expires_at=None if expires_in is None else utcnow() + expires_in,
        )
        db_session.add(credit_account)
        db_session.commit()
        return credit_account

    return _make


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def notifier():
    return RecordingNotifier()
