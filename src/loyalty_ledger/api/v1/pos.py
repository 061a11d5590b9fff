"""Point-of-sale scan endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.errors import LedgerRuleViolation
from ...schemas import CustomerSummary, ScanRequest, ScanResponse, VoucherSummary
from ...services import redemption_engine
from ...services.audit_service import AuditSink
from ...services.notification_service import Notifier
from .deps import get_audit_sink, get_notifier, rule_violation_to_http

router = APIRouter(prefix="/pos", tags=["pos"])


@router.post(
    "/scan",
    response_model=ScanResponse,
    status_code=status.HTTP_200_OK,
    summary="Process a scanned QR code",
    responses={
        200: {
            "description": "Points awarded or voucher used",
            "content": {
                "application/json": {
                    "example": {
                        "type": "points_awarded",
                        "customer": {"id": 42, "name": "Nok Chaiyaporn"},
                        "new_balance": 35,
                        "points_awarded": 35,
                        "amount_spent": "350",
                    }
                }
            },
        },
        400: {"description": "Invalid or expired code, invalid amount, or expired voucher"},
        404: {"description": "Customer or voucher not found"},
        409: {"description": "Voucher already used"},
        503: {"description": "Storage temporarily unavailable; safe to retry"},
    },
)
def scan(
    payload: ScanRequest,
    db: Session = Depends(get_db),
    audit_sink: AuditSink = Depends(get_audit_sink),
    notifier: Notifier = Depends(get_notifier),
) -> ScanResponse:
    """Award points for an identity code or consume the voucher a redemption code names.

    Example request body::

        {
            "qr_token": "<signed token>",
            "amount": 350,
            "outlet": "Central",
            "staff_id": 7
        }
    """

    try:
        result = redemption_engine.process_pos_scan(
            db,
            token=payload.qr_token,
            amount=payload.amount,
            outlet=payload.outlet,
            staff_id=payload.staff_id,
            audit_sink=audit_sink,
            notifier=notifier,
        )
    except LedgerRuleViolation as exc:
        raise rule_violation_to_http(db, exc) from exc

    voucher = None
    if result.voucher_id is not None:
        voucher = VoucherSummary(
            id=result.voucher_id,
            title=result.voucher_title or "",
            voucher_type=result.voucher_type or "",
        )
    return ScanResponse(
        type=result.outcome.value,
        customer=CustomerSummary(id=result.customer_id, name=result.customer_name),
        new_balance=result.new_balance,
        points_awarded=result.points_awarded,
        amount_spent=result.amount_spent,
        voucher=voucher,
        value=result.value,
    )
