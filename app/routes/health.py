"""
Health check endpoints.
"""
import logging
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database.session import get_session
from app.services.config_service import config_service

router = APIRouter()
logger = logging.getLogger("app.health")

SERVICE_NAME = "faculty-analytics"
SERVICE_VERSION = "0.1.0"


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint for Kubernetes/Docker health probes.

    Returns:
        Dict with status information
    """
    logger.info("Health check requested")

    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION
    }


@router.get("/health")
def detailed_health(db: Session = Depends(get_session)) -> Dict[str, Any]:
    """
    Detailed health check with component status.

    Returns:
        Dict with detailed health information
    """
    logger.info("Detailed health check requested")

    database = {"status": "healthy"}
    try:
        start_time = time.time()
        db.execute(text("SELECT 1"))
        database["response_time"] = round((time.time() - start_time) * 1000, 2)  # ms
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database = {"status": "unhealthy", "error": str(e)}

    return {
        "status": "ok" if database["status"] == "healthy" else "degraded",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "components": {
            "database": database,
            "records_api": {"base_url": config_service.get_setting("RECORDS_API_BASE_URL")},
            "cluster_strategy": config_service.get_setting("ANALYTICS_CLUSTER_STRATEGY"),
        }
    }
