"""Evidence (case media) service.

Performs no authorization: callers must confirm access to the case first
(the /cases/{case_id}/media route does this once, before calling in).

URL resolution per item:
- video: external_url as stored, never signed
- storage-backed image/document/audio: a signed URL from storage
- otherwise: external_url if present, else None

A signing failure is logged and leaves url=None on that item; the item is
still returned and the rest of the list is unaffected.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from casefile.db.models import CaseMedia, MediaType
from casefile.logging import get_logger
from casefile.schemas.cases import CaseMediaOut, MediaWithUrlOut
from casefile.result import is_failure, try_call, unwrap_or
from casefile.storage.client import StorageClientBase

logger = get_logger(__name__)

DEFAULT_SIGNED_URL_TTL_S = 3600


def to_media_out(row: CaseMedia) -> CaseMediaOut:
    return CaseMediaOut(
        id=row.id,
        case_id=row.case_id,
        title=row.title,
        description=row.description,
        media_type=row.media_type.value,
        storage_path=row.storage_path,
        external_url=row.external_url,
        cover_image_url=row.cover_image_url,
        display_order=row.display_order,
    )


def get_case_media(db: Session, case_id: str) -> list[CaseMediaOut]:
    """Evidence items of a case in display order (ascending)."""
    rows = db.scalars(
        select(CaseMedia)
        .where(CaseMedia.case_id == case_id)
        .order_by(CaseMedia.display_order, CaseMedia.created_at, CaseMedia.id)
    ).all()
    return [to_media_out(row) for row in rows]


def sign_url(
    storage: StorageClientBase, storage_path: str, ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_S
) -> str | None:
    """Signed URL for a storage path, or None if signing failed."""
    result = try_call(storage.sign_url, storage_path, expires_in=ttl_seconds)
    if is_failure(result):
        logger.warning(
            "signed_url_failed",
            storage_path=storage_path,
            code=getattr(result.error, "code", None),
            error=str(result.error),
        )
    return unwrap_or(result, None)


def resolve_media_url(
    storage: StorageClientBase, item: CaseMediaOut, ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_S
) -> str | None:
    if item.media_type == MediaType.video.value:
        return item.external_url
    if item.storage_path:
        return sign_url(storage, item.storage_path, ttl_seconds)
    return item.external_url


def resolve_media_urls(
    storage: StorageClientBase,
    items: list[CaseMediaOut],
    ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_S,
) -> list[MediaWithUrlOut]:
    """Attach display URLs to every item, keeping order and length."""
    resolved = []
    for item in items:
        url = resolve_media_url(storage, item, ttl_seconds)
        resolved.append(MediaWithUrlOut(**item.model_dump(), url=url))

    unsigned = sum(1 for item in resolved if item.url is None)
    if unsigned:
        logger.info("media_resolved_partial", total=len(resolved), without_url=unsigned)
    return resolved


def get_case_media_with_urls(
    db: Session,
    storage: StorageClientBase,
    case_id: str,
    ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_S,
) -> list[MediaWithUrlOut]:
    """Evidence list for display: get_case_media followed by URL resolution."""
    return resolve_media_urls(storage, get_case_media(db, case_id), ttl_seconds)
