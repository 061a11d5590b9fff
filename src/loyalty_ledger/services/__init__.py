"""Service layer exports."""

from . import (
	audit_service,
	ledger_service,
	notification_service,
	points_expiry_service,
	redemption_engine,
	renewal_service,
	token_service,
	voucher_service,
)

__all__ = [
	"audit_service",
	"ledger_service",
	"notification_service",
	"points_expiry_service",
	"redemption_engine",
	"renewal_service",
	"token_service",
	"voucher_service",
]
