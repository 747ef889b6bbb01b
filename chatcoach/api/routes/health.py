"""
Health and readiness check API endpoints
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from chatcoach.core.database import get_db
from chatcoach.services.health_service import HealthService

router = APIRouter()
health_service = HealthService()


@router.get("/health")
def liveness_check():
    """Liveness check: the process is up"""
    return health_service.liveness_check()


@router.get("/health/ready")
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check endpoint

    Returns:
        Component status; 503 when the database is unreachable
    """
    result = health_service.readiness_check(db)
    if result["status"] != "ready":
        return JSONResponse(status_code=503, content=result)
    return result
