"""Checkout orchestration: order, capture, verification, fallback save.

Each attempt moves through

    idle -> order-created -> capturing -> verifying -> verified
                                                    -> fallback-saved
                                                    -> failed

and any non-terminal state may also go straight to failed.

Capture moves the buyer's money and cannot be undone from here, while
recording the purchase is a separate network hop (POST /api/payments/verify)
that can fail on its own. So once capture succeeds:

- the capture not matching the attempt's case or amount -> failed, no
  purchase recorded
- the verification endpoint answering with a rejection -> failed
- the verification endpoint being unreachable -> the purchase row is written
  directly, marked with FALLBACK_NOTE -> fallback-saved
- the direct write failing as well -> failed, asking the buyer to contact
  support with the order id

Every remote call goes through try_catch; branches are explicit.
There is no automatic retry: a failed attempt is retried by the buyer.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from casefile.config import PRICE_QUANTUM
from casefile.db.session import transaction
from casefile.logging import get_logger, set_order_id
from casefile.result import is_failure, is_success, try_catch, unwrap
from casefile.schemas.cases import CaseOut
from casefile.services.payments import (
    PaymentProvider,
    PaymentWindowClosedError,
    build_order_request,
    captured_purchase,
    format_amount,
)
from casefile.services.purchases import FALLBACK_NOTE, upsert_purchase

logger = get_logger(__name__)

DEFAULT_CAPTURE_TIMEOUT_S = 30.0

ORDER_FAILED_MESSAGE = "Could not start the payment. Please try again."
CAPTURE_FAILED_MESSAGE = "Payment processing failed. Please try again."
WINDOW_CLOSED_MESSAGE = (
    "The payment window was closed before the payment was completed. "
    "You have not been charged."
)
CAPTURE_TIMEOUT_MESSAGE = (
    "Payment processing timed out after {seconds:g} seconds. "
    "Please check your PayPal account before trying again."
)
VERIFIED_MESSAGE = "Payment successful! You now have access to this case."
FALLBACK_SAVED_MESSAGE = "Payment received and your purchase was recorded. You now have access."
VERIFICATION_REJECTED_MESSAGE = (
    "Your payment was received but could not be verified ({reason}). "
    "Please contact support with order {order_id}."
)
RECORDING_FAILED_MESSAGE = (
    "Your payment was received but we could not record your purchase. "
    "Please contact support with order {order_id}."
)
CAPTURE_MISMATCH_MESSAGE = (
    "The captured payment does not match this case. "
    "Please contact support with order {order_id}."
)


class CheckoutState(str, Enum):
    IDLE = "idle"
    ORDER_CREATED = "order-created"
    CAPTURING = "capturing"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    FALLBACK_SAVED = "fallback-saved"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {CheckoutState.VERIFIED, CheckoutState.FALLBACK_SAVED, CheckoutState.FAILED}
)
ACCESS_GRANTING_STATES = frozenset({CheckoutState.VERIFIED, CheckoutState.FALLBACK_SAVED})

_NEXT_STATES: dict[CheckoutState, frozenset[CheckoutState]] = {
    CheckoutState.IDLE: frozenset({CheckoutState.ORDER_CREATED}),
    CheckoutState.ORDER_CREATED: frozenset({CheckoutState.CAPTURING}),
    CheckoutState.CAPTURING: frozenset({CheckoutState.VERIFYING}),
    CheckoutState.VERIFYING: frozenset({CheckoutState.VERIFIED, CheckoutState.FALLBACK_SAVED}),
}


class InvalidTransitionError(RuntimeError):
    pass


@dataclass
class CheckoutAttempt:
    """One buyer's attempt to buy one case."""

    case_id: str
    user_id: UUID
    amount: Decimal
    state: CheckoutState = CheckoutState.IDLE
    order_id: str | None = None
    message: str = ""
    fallback: bool = False
    history: list[CheckoutState] = field(default_factory=list)

    @classmethod
    def for_order(
        cls, order_id: str, *, case_id: str, user_id: UUID, amount: Decimal
    ) -> "CheckoutAttempt":
        """Attempt for an order created earlier (the buyer has since approved it)."""
        attempt = cls(case_id=case_id, user_id=user_id, amount=amount)
        attempt.order_id = order_id
        attempt.advance(CheckoutState.ORDER_CREATED)
        return attempt

    def advance(self, state: CheckoutState, message: str | None = None) -> None:
        if self.state in TERMINAL_STATES:
            raise InvalidTransitionError(f"attempt already ended in {self.state.value}")
        if state != CheckoutState.FAILED and state not in _NEXT_STATES[self.state]:
            raise InvalidTransitionError(f"{self.state.value} -> {state.value}")

        self.history.append(self.state)
        self.state = state
        if message is not None:
            self.message = message
        logger.info(
            "checkout_state_changed",
            case_id=self.case_id,
            order_id=self.order_id,
            from_state=self.history[-1].value,
            to_state=state.value,
        )

    def fail(self, message: str) -> None:
        self.advance(CheckoutState.FAILED, message)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def grants_access(self) -> bool:
        return self.state in ACCESS_GRANTING_STATES


class VerificationRejectedError(Exception):
    """The verification endpoint answered, and refused."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class VerificationClient:
    """Client for POST /api/payments/verify.

    Transport failures (httpx.TransportError, timeouts included) propagate
    unchanged: they mean the endpoint could not be reached. Any answer that
    is not a 2xx JSON body without an "error" key raises
    VerificationRejectedError.
    """

    def __init__(self, client: httpx.AsyncClient, verify_url: str, timeout_s: float = 15.0):
        self._client = client
        self._verify_url = verify_url
        self._timeout = httpx.Timeout(timeout_s, connect=5.0)

    async def verify(
        self, *, order_id: str, user_id: UUID, case_id: str, amount: Decimal
    ) -> dict[str, Any]:
        response = await self._client.post(
            self._verify_url,
            json={
                "orderId": order_id,
                "userId": str(user_id),
                "caseId": case_id,
                "amount": float(amount),
            },
            timeout=self._timeout,
        )

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success or not isinstance(body, dict) or body.get("error"):
            reason = body.get("error") if isinstance(body, dict) else None
            raise VerificationRejectedError(
                str(reason or f"HTTP {response.status_code}"), response.status_code
            )
        return body


# Writes the purchase row without going through the verification endpoint.
PurchaseWriter = Callable[[UUID, str, str, Decimal], None]


def make_direct_purchase_writer(session_factory: Callable[[], Session]) -> PurchaseWriter:
    """Fallback writer: upsert the purchase in its own session, marked degraded."""

    def write(user_id: UUID, case_id: str, order_id: str, amount: Decimal) -> None:
        db = session_factory()
        try:
            with transaction(db):
                upsert_purchase(
                    db,
                    user_id=user_id,
                    case_id=case_id,
                    payment_id=order_id,
                    amount=amount,
                    note=FALLBACK_NOTE,
                )
        finally:
            db.close()

    return write


class CheckoutOrchestrator:
    """Drives checkout attempts through the state machine.

    Args:
        provider: Payment provider for order creation and capture.
        verifier: Client for the verification endpoint.
        fallback_writer: Direct purchase write used when verification is unreachable.
            Runs in a worker thread.
        capture_timeout_s: Upper bound on the capture call.
    """

    def __init__(
        self,
        provider: PaymentProvider,
        verifier: VerificationClient,
        fallback_writer: PurchaseWriter,
        *,
        capture_timeout_s: float = DEFAULT_CAPTURE_TIMEOUT_S,
    ):
        self._provider = provider
        self._verifier = verifier
        self._fallback_writer = fallback_writer
        self._capture_timeout_s = capture_timeout_s

    async def create_order(self, case: CaseOut, user_id: UUID) -> tuple[CheckoutAttempt, dict]:
        """Create the provider order for a case.

        Returns:
            The attempt (order-created or failed) and the provider's order
            body (empty on failure).
        """
        attempt = CheckoutAttempt(case_id=case.id, user_id=user_id, amount=case.price)
        result = await try_catch(self._provider.create_order(build_order_request(case)))

        if is_failure(result):
            logger.warning("checkout_order_failed", case_id=case.id, error=str(result.error))
            attempt.fail(ORDER_FAILED_MESSAGE)
            return attempt, {}

        order = unwrap(result)
        attempt.order_id = order["id"]
        set_order_id(attempt.order_id)
        attempt.advance(CheckoutState.ORDER_CREATED)
        return attempt, order

    async def capture_and_record(self, attempt: CheckoutAttempt) -> CheckoutAttempt:
        """Capture an approved order, then verify (or fall back) and record it."""
        attempt.advance(CheckoutState.CAPTURING)
        set_order_id(attempt.order_id)

        capture = await try_catch(
            asyncio.wait_for(
                self._provider.capture_order(attempt.order_id), timeout=self._capture_timeout_s
            )
        )
        if is_failure(capture):
            attempt.fail(self._capture_failure_message(capture.error))
            logger.warning(
                "checkout_capture_failed",
                case_id=attempt.case_id,
                error_type=type(capture.error).__name__,
                error=str(capture.error),
            )
            return attempt

        if not self._capture_matches(attempt, unwrap(capture)):
            attempt.fail(CAPTURE_MISMATCH_MESSAGE.format(order_id=attempt.order_id))
            return attempt

        attempt.advance(CheckoutState.VERIFYING)
        verification = await try_catch(
            self._verifier.verify(
                order_id=attempt.order_id,
                user_id=attempt.user_id,
                case_id=attempt.case_id,
                amount=attempt.amount,
            )
        )

        if is_success(verification):
            attempt.advance(CheckoutState.VERIFIED, VERIFIED_MESSAGE)
            return attempt

        error = verification.error
        if not isinstance(error, httpx.TransportError):
            reason = error.message if isinstance(error, VerificationRejectedError) else str(error)
            logger.error(
                "checkout_verification_rejected", case_id=attempt.case_id, reason=reason
            )
            attempt.fail(
                VERIFICATION_REJECTED_MESSAGE.format(reason=reason, order_id=attempt.order_id)
            )
            return attempt

        logger.warning(
            "checkout_verification_unreachable", case_id=attempt.case_id, error=str(error)
        )
        return await self._fallback_save(attempt)

    async def run(self, case: CaseOut, user_id: UUID) -> CheckoutAttempt:
        """Whole attempt in one call, for providers that approve on creation."""
        attempt, _ = await self.create_order(case, user_id)
        if attempt.is_terminal:
            return attempt
        return await self.capture_and_record(attempt)

    async def _fallback_save(self, attempt: CheckoutAttempt) -> CheckoutAttempt:
        saved = await try_catch(
            asyncio.to_thread(
                self._fallback_writer,
                attempt.user_id,
                attempt.case_id,
                attempt.order_id,
                attempt.amount,
            )
        )
        if is_failure(saved):
            logger.error(
                "checkout_fallback_failed",
                case_id=attempt.case_id,
                user_id=str(attempt.user_id),
                amount=format_amount(attempt.amount),
                error=str(saved.error),
            )
            attempt.fail(RECORDING_FAILED_MESSAGE.format(order_id=attempt.order_id))
            return attempt

        attempt.fallback = True
        attempt.advance(CheckoutState.FALLBACK_SAVED, FALLBACK_SAVED_MESSAGE)
        logger.warning(
            "checkout_fallback_saved", case_id=attempt.case_id, user_id=str(attempt.user_id)
        )
        return attempt

    def _capture_matches(self, attempt: CheckoutAttempt, capture: dict) -> bool:
        """Whether the captured order is for this attempt's case and amount."""
        case_id, amount = captured_purchase(capture)
        expected = Decimal(attempt.amount).quantize(PRICE_QUANTUM)
        if case_id == attempt.case_id and amount == expected:
            return True

        logger.error(
            "checkout_capture_mismatch",
            case_id=attempt.case_id,
            captured_case_id=case_id,
            expected_amount=format_amount(expected),
            captured_amount=format_amount(amount) if amount is not None else None,
        )
        return False

    def _capture_failure_message(self, error: Exception) -> str:
        if isinstance(error, asyncio.TimeoutError):
            return CAPTURE_TIMEOUT_MESSAGE.format(seconds=self._capture_timeout_s)
        if isinstance(error, PaymentWindowClosedError):
            return WINDOW_CLOSED_MESSAGE
        return CAPTURE_FAILED_MESSAGE
