"""DELETE /api/user/delete?userId=<id>: soft-delete an account.

Sets users.is_deleted and users.deleted_at; nothing is removed and the
auth session is left alone (the site signs the user out right after).
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from casefile.api.deps import get_db
from casefile.logging import get_logger
from casefile.services import accounts as accounts_service

logger = get_logger(__name__)

router = APIRouter()


@router.delete("/api/user/delete", response_model=None)
def delete_user(
    db: Annotated[Session, Depends(get_db)],
    user_id: Annotated[str | None, Query(alias="userId")] = None,
) -> dict | JSONResponse:
    if not user_id:
        return JSONResponse(status_code=400, content={"error": "User ID is required"})

    try:
        parsed_id = UUID(user_id)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid user ID"})

    try:
        accounts_service.soft_delete_user(db, parsed_id)
    except SQLAlchemyError as e:
        logger.error("user_soft_delete_failed", user_id=user_id, error=str(e))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to soft-delete user profile", "details": str(e)},
        )

    return {"success": True}
