"""Health check endpoints."""

from fastapi import APIRouter

from casefile.responses import success_response

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Liveness only; the database and providers are not checked."""
    return success_response({"status": "ok"})
