"""
Health and readiness check service
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from chatcoach.core.config import settings

logger = logging.getLogger(__name__)

SERVICE_NAME = "chatcoach-api"
SERVICE_VERSION = "1.0.0"


class HealthService:
    """
    Service for health and readiness checks
    """

    def liveness_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": self._get_timestamp(),
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION
        }

    def readiness_check(self, db: Session) -> Dict[str, Any]:
        """
        Readiness check - database connectivity plus configuration presence

        The LLM and object storage are only checked for configuration, no
        calls are made to them.
        """
        components = {}
        overall_healthy = True

        try:
            db.execute(text("SELECT 1"))
            components["database"] = {
                "status": "healthy",
                "url": settings.database_url.split("@")[-1] if "@" in settings.database_url else "local"
            }
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {str(e)}")
            components["database"] = {
                "status": "unhealthy",
                "error": str(e)
            }
            overall_healthy = False

        if settings.llm_api_key and settings.llm_api_key.strip():
            components["llm"] = {"status": "configured", "model": settings.llm_model}
        else:
            components["llm"] = {
                "status": "not_configured",
                "message": "LLM_API_KEY is not set; consult and translate will fail"
            }

        components["storage"] = {
            "status": "configured" if settings.storage_bucket else "not_configured",
            "bucket": settings.storage_bucket
        }

        return {
            "status": "ready" if overall_healthy else "not_ready",
            "timestamp": self._get_timestamp(),
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "components": components
        }

    def _get_timestamp(self) -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
