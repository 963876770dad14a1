"""
Health check endpoint
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from hr_leave.core.config import settings
from hr_leave.core.deps import get_db

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Liveness plus a database round trip.

    status is "degraded" when the database cannot be reached; the endpoint
    itself still answers 200 so load balancers can tell the two apart.
    """
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("health check: database unavailable: %s", e)
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "service": "hr-leave-service",
        "version": settings.VERSION or "1.0.0",
        "environment": settings.APP_ENV,
        "database": database,
    }
