"""Case catalog service.

Read-only access to detective_cases. Two data sources return the same shape:

- runtime: the caller's request-scoped session
- static: a short-lived session opened by the catalog itself, for callers
  without a request (seeding, sitemap/build jobs)

The full list is memoized in a CatalogCache owned by the app after the first
successful read. Single lookups are served from the cached list when
possible and fall back to the store otherwise.
"""

from collections.abc import Callable
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from casefile.cache import CatalogCache
from casefile.db.models import DetectiveCase
from casefile.errors import CatalogError
from casefile.logging import get_logger
from casefile.schemas.cases import CaseOut

logger = get_logger(__name__)


class CatalogMode(str, Enum):
    STATIC = "static"
    RUNTIME = "runtime"


def to_case_out(row: DetectiveCase) -> CaseOut:
    return CaseOut(
        id=row.id,
        title=row.title,
        description=row.description,
        price=row.price,
        difficulty=row.difficulty.value,
        image_url=row.image_url,
        content=row.content,
    )


class CaseCatalog:
    """Catalog reads with a process-wide memo of the case list.

    Args:
        cache: Cache holding the full list of CaseOut.
        static_session_factory: Opens sessions for CatalogMode.STATIC reads.
    """

    def __init__(
        self,
        cache: CatalogCache[list[CaseOut]],
        static_session_factory: Callable[[], Session] | None = None,
    ):
        self._cache = cache
        self._static_session_factory = static_session_factory

    def list_cases(
        self, db: Session | None = None, *, mode: CatalogMode = CatalogMode.RUNTIME
    ) -> list[CaseOut]:
        """All cases ordered by id.

        Raises:
            CatalogError: The store could not be read.
        """
        cached = self._cache.get()
        if cached is not None:
            return cached

        cases = self._read(db, mode, _fetch_all)
        self._cache.set(cases)
        logger.info("catalog_cached", count=len(cases), mode=mode.value)
        return cases

    def get_case(
        self, case_id: str, db: Session | None = None, *, mode: CatalogMode = CatalogMode.RUNTIME
    ) -> CaseOut | None:
        """One case, or None when no such id exists.

        Raises:
            CatalogError: The store could not be read.
        """
        cached = self._cache.get()
        if cached is not None:
            for case in cached:
                if case.id == case_id:
                    return case

        return self._read(db, mode, lambda session: _fetch_one(session, case_id))

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("catalog_cache_cleared")

    def _read(self, db: Session | None, mode: CatalogMode, query: Callable[[Session], object]):
        if mode == CatalogMode.RUNTIME:
            if db is None:
                raise ValueError("runtime catalog reads need a session")
            return _guarded(query, db)

        if self._static_session_factory is None:
            raise ValueError("static catalog reads need a session factory")
        session = self._static_session_factory()
        try:
            return _guarded(query, session)
        finally:
            session.close()


def _guarded(query: Callable[[Session], object], db: Session):
    try:
        return query(db)
    except SQLAlchemyError as e:
        logger.error("catalog_read_failed", error=str(e))
        raise CatalogError(f"Failed to fetch cases: {e}") from e


def _fetch_all(db: Session) -> list[CaseOut]:
    rows = db.scalars(select(DetectiveCase).order_by(DetectiveCase.id)).all()
    return [to_case_out(row) for row in rows]


def _fetch_one(db: Session, case_id: str) -> CaseOut | None:
    row = db.get(DetectiveCase, case_id)
    return to_case_out(row) if row is not None else None
