"""Public schema exports."""

from .ledger import (
	BalanceRead,
	BalanceVerification,
	CreditAccountRead,
	CreditMovementCreate,
	LedgerEntryRead,
	PointsGrantCreate,
	ReversalCreate,
)
from .pos import CustomerSummary, ScanRequest, ScanResponse, VoucherSummary
from .renewal import AuditRecordRead, CategorySummaryRead, PointsExpirySummaryRead, RenewalSummaryRead
from .token import TokenResponse
from .voucher import VoucherClaimCreate, VoucherInstanceRead, VoucherRead

__all__ = [
	"AuditRecordRead",
	"BalanceRead",
	"BalanceVerification",
	"CategorySummaryRead",
	"CreditAccountRead",
	"CreditMovementCreate",
	"CustomerSummary",
	"LedgerEntryRead",
	"PointsExpirySummaryRead",
	"PointsGrantCreate",
	"RenewalSummaryRead",
	"ReversalCreate",
	"ScanRequest",
	"ScanResponse",
	"TokenResponse",
	"VoucherClaimCreate",
	"VoucherInstanceRead",
	"VoucherRead",
	"VoucherSummary",
]
