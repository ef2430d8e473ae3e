"""Liveness and readiness probes."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quill import __version__
from quill.config import settings
from quill.database import get_db
from quill.dependencies import get_publish_queue
from quill.services.queue import DeferredQueue

router = APIRouter(tags=["system"])


@router.get("/healthz", summary="Health check", response_model=dict)
def health_check(db: Session = Depends(get_db)) -> dict:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="unhealthy"
        )
    if settings.is_production:
        return {"status": "healthy"}
    return {"status": "healthy", "database": "connected", "version": __version__}


@router.get("/readyz", summary="Readiness check", response_model=dict)
async def readiness_check(
    db: Session = Depends(get_db),
    queue: DeferredQueue = Depends(get_publish_queue),
) -> dict:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="database unavailable",
        )
    if not await queue.ping():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="queue unavailable",
        )
    if settings.is_production:
        return {"status": "ready"}
    return {"status": "ready", "database": "connected", "queue": queue.name}
