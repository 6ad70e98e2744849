"""Liveness and readiness probes.

``/health`` only proves the process answers. ``/health/ready`` runs a
``SELECT 1`` against the photo store and checks that the asset
directory is writable; it answers 503 until both pass.
"""

import os
from typing import Any, Dict

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ephemap import __version__
from ephemap.api.deps import DBSession, Storage
from ephemap.core.config import settings
from ephemap.models.base import utcnow
from ephemap.services.change_feed import change_feed

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=Dict[str, Any], summary="Health Check")
async def health_check() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "environment": settings.APP_ENV,
        "version": __version__,
    }


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check(db: DBSession, storage: Storage) -> JSONResponse:
    """Check the store and the asset directory.

    Returns:
        200 with per-dependency status when ready, 503 otherwise.
    """
    checks: Dict[str, Dict[str, Any]] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy", "message": "Connected"}
    except SQLAlchemyError as e:
        checks["database"] = {"status": "unhealthy", "message": str(e)}

    root = storage.base_path
    if root.is_dir() and os.access(root, os.W_OK):
        checks["storage"] = {"status": "healthy", "message": str(root)}
    else:
        checks["storage"] = {"status": "unhealthy", "message": f"{root} is not writable"}

    ready = all(check["status"] == "healthy" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "timestamp": utcnow().isoformat(),
            "checks": checks,
            "change_feed_subscribers": change_feed.subscriber_count,
        },
    )
