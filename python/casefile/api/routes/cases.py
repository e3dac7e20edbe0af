"""Catalog, access and evidence routes.

Routes are transport-only:
- Read the viewer from request.state (access and media routes)
- Call the catalog / access / media services
- Return success(...) or raise ApiError

GET /cases and GET /cases/{case_id} are public. The media route is the one
place purchase access is enforced before evidence is listed.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from casefile.api.deps import get_catalog, get_db, get_storage
from casefile.auth.middleware import Viewer, get_viewer
from casefile.config import get_settings
from casefile.errors import ApiError, ApiErrorCode, ForbiddenError, NotFoundError
from casefile.responses import success_response
from casefile.schemas.cases import CaseOut
from casefile.services import access as access_service
from casefile.services import media as media_service
from casefile.services.catalog import CaseCatalog
from casefile.storage.client import StorageClientBase

router = APIRouter()


def _require_case(catalog: CaseCatalog, db: Session, case_id: str) -> CaseOut:
    case = catalog.get_case(case_id, db)
    if case is None:
        raise NotFoundError(ApiErrorCode.E_CASE_NOT_FOUND, "Case not found")
    return case


@router.get("/cases")
def list_cases(
    catalog: Annotated[CaseCatalog, Depends(get_catalog)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """All cases, ordered by id. Served from the catalog cache once warm."""
    cases = catalog.list_cases(db)
    return success_response([case.model_dump(mode="json") for case in cases])


@router.get("/cases/{case_id}")
def get_case(
    case_id: str,
    catalog: Annotated[CaseCatalog, Depends(get_catalog)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """One case. 404 E_CASE_NOT_FOUND if no such id."""
    case = _require_case(catalog, db, case_id)
    return success_response(case.model_dump(mode="json"))


@router.get("/cases/{case_id}/access")
def get_case_access(
    case_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Whether the viewer has purchased the case.

    A failed check reports has_access=false with an error message rather
    than failing the request.
    """
    result = access_service.check_access(db, case_id, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/cases/{case_id}/media")
def get_case_media(
    case_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    catalog: Annotated[CaseCatalog, Depends(get_catalog)],
    storage: Annotated[StorageClientBase, Depends(get_storage)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Evidence for a purchased case, with display URLs resolved.

    Items whose file could not be signed are listed with url=null.
    """
    _require_case(catalog, db, case_id)

    access = access_service.check_access(db, case_id, viewer.user_id)
    if access.error:
        raise ApiError(ApiErrorCode.E_DATABASE_ERROR, access.error)
    if not access.has_access:
        raise ForbiddenError(
            ApiErrorCode.E_PURCHASE_REQUIRED, "Purchase this case to view its evidence"
        )

    items = media_service.get_case_media_with_urls(
        db, storage, case_id, ttl_seconds=get_settings().signed_url_expiry_s
    )
    return success_response([item.model_dump(mode="json") for item in items])
