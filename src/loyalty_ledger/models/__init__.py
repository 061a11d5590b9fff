"""SQLAlchemy models for the loyalty ledger."""

from .account import Account, AccountType
from .audit_record import AuditRecord, AuditSeverity
from .credit_account import CreditAccount, CreditType
from .ledger_entry import LedgerEntry, LedgerEntryKind
from .voucher import Voucher, VoucherExpiryType
from .voucher_instance import VoucherInstance, VoucherInstanceStatus

__all__ = [
    "Account",
    "AccountType",
    "AuditRecord",
    "AuditSeverity",
    "CreditAccount",
    "CreditType",
    "LedgerEntry",
    "LedgerEntryKind",
    "Voucher",
    "VoucherExpiryType",
    "VoucherInstance",
    "VoucherInstanceStatus",
]
