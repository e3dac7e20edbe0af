"""POST /api/payments/verify: record a captured payment.

Called by the checkout orchestrator after a successful capture. Bodies are
flat ({"success": ..., "error" | "data"...}), not the API envelope.

Responses:
- 400 Invalid JSON payload / Missing required parameter: <field> /
  Invalid amount: must be a number
- 500 Database error: <message> when the write fails
- 500 Verification error: <message> for anything else
- 200 {"success": true, "data": <purchase>, "message": ...}
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from casefile.api.deps import get_db
from casefile.logging import get_logger
from casefile.responses import payment_failure
from casefile.services import purchases as purchases_service

logger = get_logger(__name__)

router = APIRouter()


@router.get("/api/payments/verify")
async def verify_probe() -> dict:
    """Liveness probe for the verification endpoint."""
    return {"status": "ok", "message": "Payment verification endpoint is available"}


@router.post("/api/payments/verify", response_model=None)
async def verify_payment(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> dict | JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        return payment_failure("Invalid JSON payload", 400)

    try:
        payment = purchases_service.parse_verification_payload(body)
    except purchases_service.InvalidVerificationError as e:
        return payment_failure(e.message, 400)

    try:
        purchase = await run_in_threadpool(purchases_service.record_verified_payment, db, payment)
    except SQLAlchemyError as e:
        logger.error("payment_verify_db_error", order_id=payment.order_id, error=str(e))
        return payment_failure(f"Database error: {_store_message(e)}", 500)
    except Exception as e:
        logger.exception("payment_verify_failed", order_id=payment.order_id)
        return payment_failure(f"Verification error: {e}", 500)

    return {
        "success": True,
        "data": purchases_service.purchase_to_dict(purchase),
        "message": f"Payment {payment.order_id} successfully verified and recorded.",
    }


def _store_message(error: SQLAlchemyError) -> str:
    """The driver's message when there is one, without SQLAlchemy's decoration."""
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)
