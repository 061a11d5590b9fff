"""Stateless signed tokens naming a customer or a voucher instance.

Verification is a pure function of the token and the server secret, so a
point-of-sale device never needs a round trip to mint or check one. Single-use
enforcement lives on the voucher instance a token names, not on the token.
"""

from __future__ import annotations

import enum
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

from jose import ExpiredSignatureError, JWTError, jwt

from ..core.config import Settings, get_settings
from ..core.errors import TokenExpired, TokenInvalid
from ..models import VoucherInstance
from ..utils.datetime import as_naive_utc

logger = logging.getLogger(__name__)

TOKEN_VERSION = 1
DEFAULT_TTL = object()


class TokenType(str, enum.Enum):
    IDENTITY = "identity"
    VOUCHER_REDEMPTION = "voucher_redemption"


_REQUIRED_FIELDS = {
    TokenType.IDENTITY: ("customer_id",),
    TokenType.VOUCHER_REDEMPTION: ("customer_id", "voucher_id", "voucher_instance_id", "expires_at"),
}


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a token."""

    token_type: TokenType
    customer_id: int
    voucher_id: Optional[int] = None
    voucher_instance_id: Optional[UUID] = None
    instance_expires_at: Optional[datetime] = None
    expires: Optional[datetime] = None


@dataclass(frozen=True)
class IssuedToken:
    token: str
    token_type: TokenType
    expires_in: Optional[int]


def format_customer_id(account_id: int) -> str:
    """Render an account id the way it appears inside QR payloads."""

    return str(account_id).zfill(6)


def issue_token(
    token_type: TokenType,
    payload: dict[str, Any],
    ttl: "timedelta | None | object" = DEFAULT_TTL,
    *,
    settings: Optional[Settings] = None,
    issued_at: Optional[datetime] = None,
) -> IssuedToken:
    """Serialise ``{type, payload, exp}`` and sign it with the server secret.

    ``ttl`` defaults to the short point-of-sale lifetime; pass ``None`` for a
    token without a fixed expiry (a customer's static identity code).
    """

    settings = settings or get_settings()
    token_type = TokenType(token_type)
    missing = [name for name in _REQUIRED_FIELDS[token_type] if payload.get(name) in (None, "")]
    if missing:
        raise ValueError(f"{token_type.value} token payload is missing {', '.join(missing)}")

    if ttl is DEFAULT_TTL:
        ttl = timedelta(seconds=settings.pos_token_ttl_seconds)

    now = issued_at or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    claims: dict[str, Any] = {
        **payload,
        "type": token_type.value,
        "ver": TOKEN_VERSION,
        "iss": settings.token_issuer,
        "iat": int(now.timestamp()),
        "nonce": secrets.token_hex(8),
    }
    expires_in: Optional[int] = None
    if ttl is not None:
        claims["exp"] = int((now + ttl).timestamp())
        expires_in = int(ttl.total_seconds())

    token = jwt.encode(claims, settings.token_secret, algorithm=settings.token_algorithm)
    return IssuedToken(token=token, token_type=token_type, expires_in=expires_in)


def issue_identity_token(
    account_id: int,
    ttl: "timedelta | None | object" = DEFAULT_TTL,
    *,
    settings: Optional[Settings] = None,
) -> IssuedToken:
    return issue_token(
        TokenType.IDENTITY,
        {"customer_id": format_customer_id(account_id)},
        ttl,
        settings=settings,
    )


def issue_voucher_token(
    instance: VoucherInstance,
    ttl: "timedelta | None | object" = DEFAULT_TTL,
    *,
    settings: Optional[Settings] = None,
) -> IssuedToken:
    payload = {
        "customer_id": format_customer_id(instance.account_id),
        "voucher_id": str(instance.voucher_id),
        "voucher_instance_id": str(instance.uuid),
        "expires_at": as_naive_utc(instance.expires_at).replace(tzinfo=timezone.utc).isoformat(),
    }
    return issue_token(TokenType.VOUCHER_REDEMPTION, payload, ttl, settings=settings)


def verify_token(token: str, *, settings: Optional[Settings] = None) -> TokenClaims:
    """Check signature, issuer and expiry, then parse the typed payload."""

    settings = settings or get_settings()
    if not token or not isinstance(token, str):
        raise TokenInvalid()

    try:
        decoded = jwt.decode(
            token,
            settings.token_secret,
            algorithms=[settings.token_algorithm],
            issuer=settings.token_issuer,
        )
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        logger.info("rejected token: %s", exc)
        raise TokenInvalid() from exc

    return _parse_claims(decoded)


def _parse_claims(decoded: dict[str, Any]) -> TokenClaims:
    try:
        token_type = TokenType(decoded.get("type"))
    except ValueError as exc:
        raise TokenInvalid("This QR code type is not recognized. Please try a different code.") from exc

    if decoded.get("ver", TOKEN_VERSION) > TOKEN_VERSION:
        raise TokenInvalid("QR code version not supported.")

    for name in _REQUIRED_FIELDS[token_type]:
        if decoded.get(name) in (None, ""):
            raise TokenInvalid()

    expires = None
    if decoded.get("exp") is not None:
        expires = datetime.fromtimestamp(int(decoded["exp"]), tz=timezone.utc).replace(tzinfo=None)

    try:
        customer_id = int(decoded["customer_id"])
        if token_type is TokenType.IDENTITY:
            return TokenClaims(token_type=token_type, customer_id=customer_id, expires=expires)
        return TokenClaims(
            token_type=token_type,
            customer_id=customer_id,
            voucher_id=int(decoded["voucher_id"]),
            voucher_instance_id=UUID(str(decoded["voucher_instance_id"])),
            instance_expires_at=as_naive_utc(datetime.fromisoformat(str(decoded["expires_at"]))),
            expires=expires,
        )
    except (TypeError, ValueError) as exc:
        raise TokenInvalid() from exc
