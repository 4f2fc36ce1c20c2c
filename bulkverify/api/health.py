"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from bulkverify.api.models import HealthResponse
from bulkverify.db.session import get_db

log = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/healthz", response_model=HealthResponse)
async def healthz(db: Session = Depends(get_db)) -> HealthResponse:
    """Health check endpoint.

    Returns service status and whether the database answers.
    """
    try:
        db.execute(text("SELECT 1"))
        return HealthResponse(ok=True, database=True)
    except Exception as e:
        log.warning(f"Health check warning: {e}")
        return HealthResponse(ok=True, database=False)
