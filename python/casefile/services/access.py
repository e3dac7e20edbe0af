"""Case access checks.

A viewer has access to a case exactly when a user_purchases row exists for
the (user_id, case_id) pair. The answer is always read from the store; it is
re-read after checkout rather than granted locally.

A failed query never grants access: it yields has_access=False together with
a displayable error.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from casefile.db.models import UserPurchase
from casefile.logging import get_logger
from casefile.result import is_failure, try_call, unwrap
from casefile.schemas.cases import AccessOut

logger = get_logger(__name__)

ACCESS_CHECK_FAILED = "Failed to verify access to this case"


def check_access(db: Session, case_id: str, user_id: UUID | str | None) -> AccessOut:
    """Check whether user_id has a purchase row for case_id."""
    if not user_id or not case_id:
        return AccessOut(case_id=case_id, has_access=False)

    if not isinstance(user_id, UUID):
        try:
            user_id = UUID(str(user_id))
        except ValueError:
            # Not a user id any purchase could be stored under.
            return AccessOut(case_id=case_id, has_access=False)

    result = try_call(_find_purchase_id, db, case_id, user_id)
    if is_failure(result):
        logger.error(
            "access_check_failed", case_id=case_id, user_id=str(user_id), error=str(result.error)
        )
        return AccessOut(case_id=case_id, has_access=False, error=ACCESS_CHECK_FAILED)

    return AccessOut(case_id=case_id, has_access=unwrap(result) is not None)


def has_access(db: Session, case_id: str, user_id: UUID | str | None) -> bool:
    """Boolean form of check_access; errors count as no access."""
    return check_access(db, case_id, user_id).has_access


def _find_purchase_id(db: Session, case_id: str, user_id: UUID) -> UUID | None:
    return db.scalars(
        select(UserPurchase.id)
        .where(UserPurchase.user_id == user_id, UserPurchase.case_id == case_id)
        .limit(1)
    ).first()
