from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from jose import jwt

from loyalty_ledger.core.config import get_settings
from loyalty_ledger.core.errors import TokenExpired, TokenInvalid
from loyalty_ledger.models import VoucherInstance
from loyalty_ledger.services import token_service
from loyalty_ledger.services.token_service import TokenType


def test_identity_token_round_trips_padded_customer_id():
    issued = token_service.issue_identity_token(42)

    assert issued.token_type is TokenType.IDENTITY
    assert issued.expires_in == get_settings().pos_token_ttl_seconds

    raw = jwt.get_unverified_claims(issued.token)
    assert raw["customer_id"] == "000042"

    claims = token_service.verify_token(issued.token)
    assert claims.token_type is TokenType.IDENTITY
    assert claims.customer_id == 42
    assert claims.expires is not None


def test_static_identity_token_has_no_expiry():
    issued = token_service.issue_identity_token(7, None)

    assert issued.expires_in is None
    assert "exp" not in jwt.get_unverified_claims(issued.token)
    assert token_service.verify_token(issued.token).expires is None


def test_voucher_token_carries_instance_reference():
    instance = VoucherInstance(
        uuid=uuid4(),
        account_id=42,
        voucher_id=9,
        expires_at=datetime(2030, 1, 31, 12, 0, 0),
    )

    claims = token_service.verify_token(token_service.issue_voucher_token(instance).token)

    assert claims.token_type is TokenType.VOUCHER_REDEMPTION
    assert claims.customer_id == 42
    assert claims.voucher_id == 9
    assert claims.voucher_instance_id == instance.uuid
    assert claims.instance_expires_at == datetime(2030, 1, 31, 12, 0, 0)


def test_missing_payload_field_is_rejected_at_issue():
    with pytest.raises(ValueError):
        token_service.issue_token(TokenType.VOUCHER_REDEMPTION, {"customer_id": "000001"})


def test_expired_token_raises_token_expired():
    stale = token_service.issue_token(
        TokenType.IDENTITY,
        {"customer_id": "000042"},
        timedelta(seconds=120),
        issued_at=datetime.now(timezone.utc) - timedelta(minutes=10),
    )

    with pytest.raises(TokenExpired):
        token_service.verify_token(stale.token)


def test_tampered_token_is_invalid():
    token = token_service.issue_identity_token(42).token
    header, payload, signature = token.split(".")
    forged = jwt.encode(
        {"type": "identity", "customer_id": "000999", "ver": 1, "iss": get_settings().token_issuer},
        "someone-elses-secret",
        algorithm="HS256",
    )

    with pytest.raises(TokenInvalid):
        token_service.verify_token(f"{header}.{forged.split('.')[1]}.{signature}")
    with pytest.raises(TokenInvalid):
        token_service.verify_token(forged)


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c"])
def test_garbage_is_invalid(garbage):
    with pytest.raises(TokenInvalid):
        token_service.verify_token(garbage)


def test_unknown_token_type_is_invalid():
    settings = get_settings()
    token = jwt.encode(
        {"type": "gift_card", "customer_id": "000042", "iss": settings.token_issuer},
        settings.token_secret,
        algorithm=settings.token_algorithm,
    )

    with pytest.raises(TokenInvalid):
        token_service.verify_token(token)


def test_wrong_issuer_is_invalid():
    settings = get_settings()
    token = jwt.encode(
        {"type": "identity", "customer_id": "000042", "iss": "someone-else"},
        settings.token_secret,
        algorithm=settings.token_algorithm,
    )

    with pytest.raises(TokenInvalid):
        token_service.verify_token(token)
