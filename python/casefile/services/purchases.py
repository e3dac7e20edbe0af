"""Purchase recording.

The unique constraint on user_purchases(user_id, case_id) is the only
concurrency control: every write is an INSERT ... ON CONFLICT DO UPDATE, so
concurrent or repeated writes for the same pair collapse into one row. A
repeat write replaces payment_id, amount, verified_at and notes; earlier
order ids for the same pair are not retained.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from casefile.config import PRICE_QUANTUM
from casefile.db.models import UserPurchase
from casefile.db.session import dialect_insert, transaction
from casefile.logging import get_logger

logger = get_logger(__name__)

# Marks purchases written without a completed server-side verification.
FALLBACK_NOTE = "Fallback save: verification endpoint unreachable, payment not re-verified"


def upsert_purchase(
    db: Session,
    *,
    user_id: UUID,
    case_id: str,
    payment_id: str,
    amount: Decimal,
    verified_at: datetime | None = None,
    note: str | None = None,
) -> UserPurchase:
    """Insert or overwrite the purchase row for (user_id, case_id).

    Does not commit; the caller owns the transaction.

    Returns:
        The stored row after the write.
    """
    insert = dialect_insert(db)
    if verified_at is None:
        verified_at = datetime.now(UTC)
    amount = Decimal(amount).quantize(PRICE_QUANTUM)

    stmt = insert(UserPurchase).values(
        id=uuid4(),
        user_id=user_id,
        case_id=case_id,
        payment_id=payment_id,
        amount=amount,
        verified_at=verified_at,
        notes=note,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "case_id"],
        set_={
            "payment_id": stmt.excluded.payment_id,
            "amount": stmt.excluded.amount,
            "verified_at": stmt.excluded.verified_at,
            "notes": stmt.excluded.notes,
        },
    )
    db.execute(stmt)

    purchase = db.scalars(
        select(UserPurchase)
        .where(UserPurchase.user_id == user_id, UserPurchase.case_id == case_id)
        .execution_options(populate_existing=True)
    ).one()

    logger.info(
        "purchase_recorded",
        user_id=str(user_id),
        case_id=case_id,
        payment_id=payment_id,
        fallback=note is not None,
    )
    return purchase


def list_purchases(db: Session, user_id: UUID) -> list[UserPurchase]:
    """All purchases of a user, newest first."""
    return list(
        db.scalars(
            select(UserPurchase)
            .where(UserPurchase.user_id == user_id)
            .order_by(UserPurchase.created_at.desc(), UserPurchase.case_id)
        ).all()
    )


def purchase_to_dict(purchase: UserPurchase) -> dict:
    """JSON-ready view of a purchase row."""
    return {
        "id": str(purchase.id),
        "user_id": str(purchase.user_id),
        "case_id": purchase.case_id,
        "payment_id": purchase.payment_id,
        "amount": float(purchase.amount),
        "verified_at": purchase.verified_at.isoformat() if purchase.verified_at else None,
        "notes": purchase.notes,
    }


# =============================================================================
# Verification endpoint payload
# =============================================================================

# Largest amount user_purchases.amount (NUMERIC(10, 2)) can hold.
MAX_AMOUNT = Decimal("99999999.99")

# Checked in this order; the first missing one is reported.
VERIFICATION_FIELDS = ("orderId", "userId", "caseId", "amount")


class InvalidVerificationError(ValueError):
    """Verification payload failed validation; message is client-facing."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class VerifiedPayment:
    order_id: str
    user_id: UUID
    case_id: str
    amount: Decimal


def parse_verification_payload(body: Any) -> VerifiedPayment:
    """Validate a POST /api/payments/verify body.

    Empty values (including 0 and "") count as missing. Amounts must be
    positive and fit the amount column.

    Raises:
        InvalidVerificationError: Naming the offending field.
    """
    if not isinstance(body, dict):
        body = {}

    for name in VERIFICATION_FIELDS:
        if not body.get(name):
            raise InvalidVerificationError(f"Missing required parameter: {name}")

    try:
        amount = Decimal(str(body["amount"]))
    except (InvalidOperation, ValueError) as e:
        raise InvalidVerificationError("Invalid amount: must be a number") from e
    if isinstance(body["amount"], bool) or not amount.is_finite():
        raise InvalidVerificationError("Invalid amount: must be a number")
    if not Decimal(0) < amount <= MAX_AMOUNT:
        raise InvalidVerificationError("Invalid amount: must be a number")

    try:
        user_id = UUID(str(body["userId"]))
    except ValueError as e:
        raise InvalidVerificationError("Invalid parameter: userId") from e

    return VerifiedPayment(
        order_id=str(body["orderId"]),
        user_id=user_id,
        case_id=str(body["caseId"]),
        amount=amount,
    )


def record_verified_payment(db: Session, payment: VerifiedPayment) -> UserPurchase:
    """Record a verified payment and commit.

    Raises:
        SQLAlchemyError: The write failed (rolled back).
    """
    with transaction(db):
        return upsert_purchase(
            db,
            user_id=payment.user_id,
            case_id=payment.case_id,
            payment_id=payment.order_id,
            amount=payment.amount,
        )
