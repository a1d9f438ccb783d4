"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from portal_api.db.session import get_db

router = APIRouter()
logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    services: dict[str, str]


def check_database(db: Session) -> str:
    """Check database connectivity.

    Returns:
        str: "up" if healthy, error message otherwise
    """
    try:
        db.execute(text("SELECT 1"))
        return "up"
    except Exception as e:
        logger.error("health.database.down", extra={"event": "health.database.down", "error_type": type(e).__name__})
        return f"down: {type(e).__name__}"


@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)) -> HealthResponse:
    """
    Health check endpoint.

    Always returns 200 OK (use /readyz for dependency checks).
    """
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        services={"api": "up", "database": check_database(db)},
    )


@router.get("/readyz", response_model=HealthResponse)
def readiness_check(response: Response, db: Session = Depends(get_db)) -> HealthResponse:
    """
    Readiness check endpoint.

    Returns 503 if the database is unreachable.
    """
    services = {"api": "up", "database": check_database(db)}

    if any(svc_status.startswith("down") for svc_status in services.values()):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", version=API_VERSION, services=services)

    return HealthResponse(status="ready", version=API_VERSION, services=services)
