"""Viewer account routes.

GET  /me                    viewer identity
GET  /me/preferences        onboarding flag
PUT  /me/preferences
GET  /me/purchases          the viewer's purchase rows
POST /auth/password/reset   recovery email (public)
POST /auth/password/update  change password with the caller's token

Auth provider refusals come back as 400 E_AUTH_REJECTED with a normalized
message (see normalize_auth_error).
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from casefile.api.deps import get_auth_provider, get_db
from casefile.auth.middleware import Viewer, get_viewer
from casefile.auth.provider import AuthProviderBase
from casefile.config import get_settings
from casefile.responses import success_response
from casefile.schemas.account import (
    PasswordResetRequest,
    PasswordUpdateRequest,
    PreferencesUpdateRequest,
)
from casefile.services import accounts as accounts_service
from casefile.services import purchases as purchases_service

router = APIRouter()


@router.get("/me")
async def get_me(viewer: Annotated[Viewer, Depends(get_viewer)]) -> dict:
    return success_response({"user_id": str(viewer.user_id), "email": viewer.email})


@router.get("/me/preferences")
def get_preferences(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    prefs = accounts_service.get_preferences(db, viewer.user_id)
    return success_response(prefs.model_dump())


@router.put("/me/preferences")
def update_preferences(
    request: PreferencesUpdateRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    prefs = accounts_service.set_preferences(
        db, viewer.user_id, request.has_completed_onboarding
    )
    return success_response(prefs.model_dump())


@router.get("/me/purchases")
def list_purchases(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    purchases = purchases_service.list_purchases(db, viewer.user_id)
    return success_response([purchases_service.purchase_to_dict(p) for p in purchases])


@router.post("/auth/password/reset")
def reset_password(
    request: PasswordResetRequest,
    auth: Annotated[AuthProviderBase, Depends(get_auth_provider)],
) -> dict:
    """Send a recovery email linking back to /auth/callback?type=recovery."""
    accounts_service.reset_password(
        auth, request.email, app_url=get_settings().normalized_app_url
    )
    return success_response({"sent": True})


@router.post("/auth/password/update")
def update_password(
    request: PasswordUpdateRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    auth: Annotated[AuthProviderBase, Depends(get_auth_provider)],
) -> dict:
    accounts_service.update_password(auth, viewer.access_token, request.password)
    return success_response({"updated": True})
