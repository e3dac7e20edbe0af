"""Signup helper endpoints used before the user has a session.

POST /api/auth/check-email          {email} -> {exists, provider?, email_confirmed?}
POST /api/auth/resend-verification  {email} -> {success: true}
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from casefile.api.deps import get_auth_provider, get_db
from casefile.auth.provider import AuthProviderBase, AuthProviderError
from casefile.config import get_settings
from casefile.logging import get_logger
from casefile.services import accounts as accounts_service

logger = get_logger(__name__)

router = APIRouter()


async def _read_email(request: Request) -> str | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    email = body.get("email") if isinstance(body, dict) else None
    return email if isinstance(email, str) and email else None


def _flat_error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/api/auth/check-email", response_model=None)
async def check_email(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthProviderBase, Depends(get_auth_provider)],
) -> dict | JSONResponse:
    email = await _read_email(request)
    if email is None:
        return _flat_error("Email is required", 400)
    if not accounts_service.EMAIL_PATTERN.match(email):
        return _flat_error("Invalid email format", 400)

    try:
        return await run_in_threadpool(accounts_service.check_email, db, auth, email)
    except SQLAlchemyError as e:
        logger.error("email_check_failed", error=str(e))
        return _flat_error("Failed to check email availability", 500)


@router.post("/api/auth/resend-verification", response_model=None)
async def resend_verification(
    request: Request,
    auth: Annotated[AuthProviderBase, Depends(get_auth_provider)],
) -> dict | JSONResponse:
    email = await _read_email(request)
    if email is None:
        return _flat_error("Email is required", 400)

    try:
        await run_in_threadpool(
            accounts_service.resend_verification,
            auth,
            email,
            app_url=get_settings().normalized_app_url,
        )
    except AuthProviderError as e:
        logger.error("verification_resend_failed", error=e.message)
        return _flat_error("Failed to resend verification email", 500)

    return {"success": True}
