"""Health check endpoints.

- /health: liveness, always 200 while the process runs
- /healthz: readiness, checks DB connectivity and reports the document cache
"""

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.app.db.engine import get_async_engine

router = APIRouter()


async def check_db(engine: AsyncEngine) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


def check_document_cache(request: Request) -> str:
    """Report whether the document cache holds a snapshot."""
    cache = getattr(request.app.state, "document_cache", None)
    if cache is None:
        return "not_configured"
    return "loaded" if cache.is_loaded else "empty"


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(request: Request) -> dict[str, Any] | JSONResponse:
    """Readiness check.

    Returns:
        200 with component status if the database answers
        503 if it does not
    """
    engine = getattr(request.app.state, "engine", None) or get_async_engine()
    db_ok, db_status = await check_db(engine)

    response_body = {
        "status": "ok" if db_ok else "degraded",
        "components": {
            "db": db_status,
            "document_cache": check_document_cache(request),
        },
    }

    if not db_ok:
        return JSONResponse(content=response_body, status_code=503)

    return response_body
