"""Checkout routes.

POST /checkout/orders                       create the provider order
POST /checkout/orders/{order_id}/capture    capture, verify, record

The price always comes from the catalog, never from the client.
A failed attempt is answered with 402 E_PAYMENT_FAILED carrying the
buyer-facing message; the buyer retries by starting a new attempt.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from casefile.api.deps import get_catalog, get_checkout, get_db
from casefile.auth.middleware import Viewer, get_viewer
from casefile.errors import ApiError, ApiErrorCode, NotFoundError
from casefile.responses import error_response, success_response
from casefile.schemas.cases import CaseOut
from casefile.schemas.checkout import (
    CaptureOrderRequest,
    CheckoutAttemptOut,
    CreateOrderOut,
    CreateOrderRequest,
)
from casefile.services.catalog import CaseCatalog
from casefile.services.checkout import CheckoutAttempt, CheckoutOrchestrator

router = APIRouter()


async def _load_case(catalog: CaseCatalog, db: Session, case_id: str) -> CaseOut:
    case = await run_in_threadpool(catalog.get_case, case_id, db)
    if case is None:
        raise NotFoundError(ApiErrorCode.E_CASE_NOT_FOUND, "Case not found")
    return case


@router.post("/checkout/orders", status_code=201)
async def create_order(
    request: CreateOrderRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    catalog: Annotated[CaseCatalog, Depends(get_catalog)],
    checkout: Annotated[CheckoutOrchestrator, Depends(get_checkout)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create a payment order for a case at its catalog price."""
    case = await _load_case(catalog, db, request.case_id)
    attempt, order = await checkout.create_order(case, viewer.user_id)
    if attempt.order_id is None:
        raise ApiError(ApiErrorCode.E_PAYMENT_PROVIDER_ERROR, attempt.message)

    out = CreateOrderOut(order_id=attempt.order_id, state=attempt.state.value, order=order)
    return success_response(out.model_dump(mode="json"))


@router.post("/checkout/orders/{order_id}/capture", response_model=None)
async def capture_order(
    order_id: str,
    request: CaptureOrderRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    catalog: Annotated[CaseCatalog, Depends(get_catalog)],
    checkout: Annotated[CheckoutOrchestrator, Depends(get_checkout)],
    db: Annotated[Session, Depends(get_db)],
) -> dict | JSONResponse:
    """Capture an approved order and record the purchase.

    200 when the attempt ends verified or fallback-saved; the client should
    re-check access afterwards rather than assume it.
    """
    case = await _load_case(catalog, db, request.case_id)
    attempt = CheckoutAttempt.for_order(
        order_id, case_id=case.id, user_id=viewer.user_id, amount=case.price
    )
    attempt = await checkout.capture_and_record(attempt)

    if not attempt.grants_access:
        return JSONResponse(
            status_code=402,
            content=error_response(ApiErrorCode.E_PAYMENT_FAILED, attempt.message),
        )

    out = CheckoutAttemptOut(
        state=attempt.state.value,
        order_id=attempt.order_id,
        case_id=attempt.case_id,
        message=attempt.message,
        fallback=attempt.fallback,
    )
    return success_response(out.model_dump(mode="json"))
