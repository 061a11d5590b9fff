from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from loyalty_ledger.api.v1.deps import get_notifier
from loyalty_ledger.core.database import get_db, get_session_factory
from loyalty_ledger.main import create_app
from loyalty_ledger.models import Account, CreditType
from loyalty_ledger.services import ledger_service
from loyalty_ledger.utils.datetime import utcnow


@pytest.fixture
def client(session_factory, notifier):
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_notifier] = lambda: notifier

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _scan(client, token, **body):
    body.setdefault("outlet", "Central")
    body.setdefault("staff_id", 7)
    return client.post("/api/v1/pos/scan", json={"qr_token": token, **body})


def test_healthcheck(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_identity_scan_flow(client, customer):
    token_response = client.get(f"/api/v1/tokens/identity/{customer.account_id}", params={"static": False})
    assert token_response.status_code == 200
    issued = token_response.json()
    assert issued["type"] == "identity"
    assert issued["expires_in"] == 120

    response = _scan(client, issued["token"], amount=350)
    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "points_awarded"
    assert body["points_awarded"] == 35
    assert body["new_balance"] == 35
    assert body["customer"] == {"id": customer.account_id, "name": "Nok Chaiyaporn"}

    balance = client.get(f"/api/v1/accounts/{customer.account_id}/balance").json()
    assert balance["points_balance"] == 35

    verification = client.get(f"/api/v1/accounts/{customer.account_id}/ledger/verify").json()
    assert verification["consistent"] is True
    assert verification["entry_count"] == 1

    audit = client.get("/api/v1/audit-records", params={"entity_type": "transaction"}).json()
    assert len(audit) == 1


def test_identity_token_is_static_by_default(client, customer):
    static = client.get(f"/api/v1/tokens/identity/{customer.account_id}").json()
    assert static["expires_in"] is None

    short = client.get(f"/api/v1/tokens/identity/{customer.account_id}", params={"ttl_seconds": 60}).json()
    assert short["expires_in"] == 60


def test_scan_errors_carry_codes(client, customer):
    token = client.get(f"/api/v1/tokens/identity/{customer.account_id}").json()["token"]

    missing_amount = _scan(client, token)
    assert missing_amount.status_code == 400
    assert missing_amount.json()["detail"]["error"] == "invalid_amount"

    garbage = _scan(client, "definitely-not-a-token", amount=100)
    assert garbage.status_code == 400
    assert garbage.json()["detail"]["error"] == "qr_invalid"

    unknown = client.get("/api/v1/tokens/identity/999999")
    assert unknown.status_code == 404
    assert unknown.json()["detail"]["error"] == "customer_not_found"


def test_voucher_claim_and_redeem_flow(client, customer, voucher, notifier):
    grant = client.post(f"/api/v1/accounts/{customer.account_id}/grants", json={"points": 150, "kind": "birthday"})
    assert grant.status_code == 201
    assert grant.json()["kind"] == "birthday"

    claim = client.post(
        "/api/v1/vouchers/claim",
        json={"account_id": customer.account_id, "voucher_id": voucher.voucher_id},
    )
    assert claim.status_code == 201
    instance = claim.json()
    assert instance["status"] == "active"
    assert instance["voucher"]["title"] == "Free Iced Latte"

    token = client.get(f"/api/v1/tokens/voucher/{instance['uuid']}").json()["token"]
    used = _scan(client, token)
    assert used.status_code == 200
    body = used.json()
    assert body["type"] == "voucher_used"
    assert body["voucher"]["title"] == "Free Iced Latte"
    assert body["new_balance"] == 50
    assert [event for _, event, _ in notifier.sent] == ["voucher_redeemed"]

    again = _scan(client, token, staff_id=8)
    assert again.status_code == 409
    assert again.json()["detail"]["error"] == "voucher_already_used"

    reissue = client.get(f"/api/v1/tokens/voucher/{instance['uuid']}")
    assert reissue.status_code == 409

    listed = client.get(
        f"/api/v1/accounts/{customer.account_id}/voucher-instances",
        params={"status": "used"},
    ).json()
    assert [row["uuid"] for row in listed] == [instance["uuid"]]
    assert listed[0]["used_at_outlet"] == "Central"

    history = client.get(f"/api/v1/accounts/{customer.account_id}/ledger").json()
    assert [row["kind"] for row in history] == ["use", "redeem", "birthday"]


def test_claim_without_points_is_rejected(client, customer, voucher):
    response = client.post(
        "/api/v1/vouchers/claim",
        json={"account_id": customer.account_id, "voucher_id": voucher.voucher_id},
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "insufficient_points"


def test_reversal_endpoint(client, customer):
    entry = client.post(f"/api/v1/accounts/{customer.account_id}/grants", json={"points": 40}).json()

    reversal = client.post(f"/api/v1/ledger/{entry['entry_id']}/reverse", json={"staff_id": 2})
    assert reversal.status_code == 201
    assert reversal.json()["points_delta"] == -40

    repeat = client.post(f"/api/v1/ledger/{entry['entry_id']}/reverse", json={})
    assert repeat.status_code == 409

    assert client.get(f"/api/v1/accounts/{customer.account_id}/balance").json()["points_balance"] == 0


def test_credit_account_endpoints(client, make_credit_account):
    credit_account = make_credit_account(CreditType.INVESTOR_OUTLET, outlet="Central", expires_in=None)
    base = f"/api/v1/credit-accounts/{credit_account.credit_account_id}"

    allocated = client.post(f"{base}/allocate", json={"credits": 300})
    assert allocated.status_code == 200
    assert allocated.json()["balance"] == 300

    consumed = client.post(f"{base}/consume", json={"credits": 120, "outlet": "Central", "staff_id": 7})
    assert consumed.status_code == 200
    assert consumed.json()["balance"] == 180

    elsewhere = client.post(f"{base}/consume", json={"credits": 10, "outlet": "Riverside"})
    assert elsewhere.status_code == 400


def test_manual_renewal_run(client, make_credit_account):
    make_credit_account(CreditType.MEDIA_BUDGET, balance=100, annual_allocation=800)

    first = client.post("/api/v1/renewals/run")
    assert first.status_code == 200
    assert first.json()["total_changed"] == 1
    assert first.json()["categories"]["media_budget"]["renewed"] == 1

    second = client.post("/api/v1/renewals/run").json()
    assert second["total_changed"] == 0

    records = client.get("/api/v1/audit-records", params={"entity_type": "credit_renewal"}).json()
    assert [record["entity_id"] for record in records] == ["media_budget"]


def test_scan_amount_outside_column_range_is_rejected(client, customer):
    token = client.get(f"/api/v1/tokens/identity/{customer.account_id}").json()["token"]

    too_precise = _scan(client, token, amount="10.005")
    assert too_precise.status_code == 422

    too_large = _scan(client, token, amount="12345678901234.00")
    assert too_large.status_code == 422

    balance = client.get(f"/api/v1/accounts/{customer.account_id}/balance").json()
    assert balance["points_balance"] == 0


def test_manual_points_expiry_run(client, session_factory, customer, notifier):
    db = session_factory()
    try:
        account = db.get(Account, customer.account_id)
        ledger_service.grant_points(db, account_id=account.account_id, points=90)
        account.last_activity_at = utcnow() - timedelta(days=400)
        db.commit()
    finally:
        db.close()

    first = client.post("/api/v1/points-expiry/run")
    assert first.status_code == 200
    assert first.json()["expired_accounts"] == 1
    assert first.json()["points_expired"] == 90
    assert first.json()["errors"] == {}

    second = client.post("/api/v1/points-expiry/run").json()
    assert second["expired_accounts"] == 0

    balance = client.get(f"/api/v1/accounts/{customer.account_id}/balance").json()
    assert balance["points_balance"] == 0
    assert [event for _, event, _ in notifier.sent] == ["points_expired"]

    records = client.get("/api/v1/audit-records", params={"entity_type": "points_expiry"}).json()
    assert len(records) == 1
