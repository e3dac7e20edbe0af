"""Internal operations routes.

Guarded by the internal secret header in staging/prod (see AuthMiddleware).
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from casefile.api.deps import get_catalog
from casefile.auth.middleware import Viewer, get_viewer
from casefile.responses import success_response
from casefile.services.catalog import CaseCatalog

router = APIRouter()


@router.delete("/internal/catalog/cache")
def clear_catalog_cache(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    catalog: Annotated[CaseCatalog, Depends(get_catalog)],
) -> dict:
    """Drop the cached case list; the next read goes to the store."""
    catalog.clear_cache()
    return success_response({"cleared": True})
