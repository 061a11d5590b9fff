"""Error taxonomy shared by the ledger, state machine and redemption engine.

Every business failure carries a stable ``code`` that point-of-sale clients can
switch on, a user-displayable ``detail`` and the HTTP status it maps to. None of
these errors leave a partial mutation behind: they are raised before the atomic
unit commits and the caller rolls the session back.
"""

from __future__ import annotations

from typing import Optional


class LedgerRuleViolation(Exception):
    """Base class for user-displayable ledger and redemption failures."""

    code = "bad_request"
    default_detail = "We could not process your request. Please try again."
    status_code = 400

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None) -> None:
        self.detail = detail or self.default_detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.detail)

    def as_payload(self) -> dict[str, str]:
        return {"error": self.code, "message": self.detail}


class TokenInvalid(LedgerRuleViolation):
    code = "qr_invalid"
    default_detail = "This QR code is invalid or corrupted. Please try scanning again."


class TokenExpired(LedgerRuleViolation):
    code = "qr_expired"
    default_detail = "This QR code has expired. Please generate a new one."


class AccountNotFound(LedgerRuleViolation):
    code = "customer_not_found"
    default_detail = "Customer not found. Please verify the phone number or member ID."
    status_code = 404


class InstanceNotFound(LedgerRuleViolation):
    code = "voucher_not_found"
    default_detail = "This voucher could not be found. It may have been removed."
    status_code = 404


class VoucherNotFound(InstanceNotFound):
    pass


class VoucherUnavailable(LedgerRuleViolation):
    code = "voucher_not_available"
    default_detail = "This voucher is currently not available."


class AlreadyUsed(LedgerRuleViolation):
    code = "voucher_already_used"
    default_detail = "This voucher has already been redeemed."
    status_code = 409


class Expired(LedgerRuleViolation):
    code = "voucher_expired"
    default_detail = "This voucher has expired and can no longer be used."


class IllegalTransition(LedgerRuleViolation):
    code = "illegal_transition"
    default_detail = "This voucher cannot change to the requested state."
    status_code = 409


class InsufficientBalance(LedgerRuleViolation):
    code = "insufficient_points"
    default_detail = "You do not have enough points for this redemption."


class InvalidAmount(LedgerRuleViolation):
    code = "invalid_amount"
    default_detail = "Please enter a valid purchase amount."


class EntryNotFound(LedgerRuleViolation):
    code = "not_found"
    default_detail = "The requested ledger entry could not be found."
    status_code = 404


class StorageUnavailable(LedgerRuleViolation):
    code = "service_unavailable"
    default_detail = "This service is temporarily unavailable. Please try again later."
    status_code = 503


class ImmutableLedgerEntry(RuntimeError):
    """Raised when code attempts to update or delete a written ledger row."""
