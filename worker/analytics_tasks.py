"""
Celery tasks for faculty analytics.
"""
import logging
from typing import Any, Dict

from app.services.analytics_service import get_analytics_service
from app.services.errors import CacheError
from worker.celery_app import celery_app

logger = logging.getLogger("worker.analytics_tasks")


@celery_app.task(bind=True, name="analytics.refresh_faculty_analytics")
def refresh_faculty_analytics(self, faculty_id: str, keep_stale: bool = False) -> Dict[str, Any]:
    """
    Recompute and cache analytics for one faculty member.

    Args:
        faculty_id: Faculty ID
        keep_stale: Leave the cached bundle in place until the recompute succeeds

    Returns:
        Dictionary with the run outcome
    """
    logger.info(f"Starting analytics refresh task for faculty {faculty_id}")

    service = get_analytics_service()
    bundle = service.refresh_analytics(faculty_id, invalidate=not keep_stale)
    status = service.get_status(faculty_id)

    if status.error:
        logger.error(f"Analytics refresh for faculty {faculty_id} ended {status.state.value}: {status.error}")
        return {
            "status": "failed",
            "faculty_id": faculty_id,
            "state": status.state.value,
            "error": status.error,
        }

    logger.info(f"Analytics refresh completed for faculty {faculty_id}")
    return {
        "status": "success",
        "faculty_id": faculty_id,
        "total_students": bundle.performance.total_students,
        "clusters": len(bundle.clustering),
        "insights": len(bundle.insights),
        "recommendations": len(bundle.recommendations),
    }


@celery_app.task(bind=True, name="analytics.refresh_stale_analytics")
def refresh_stale_analytics(self) -> Dict[str, Any]:
    """
    Periodic warm-up: queue a refresh for every expired cache entry.

    Returns:
        Dictionary with the queued faculty IDs
    """
    logger.info("Checking for stale analytics cache entries")

    try:
        faculty_ids = get_analytics_service().cache.stale_faculty_ids()
    except CacheError as e:
        logger.error(f"Error listing stale analytics: {e}")
        return {"status": "failed", "error": str(e)}

    for faculty_id in faculty_ids:
        refresh_faculty_analytics.delay(faculty_id, keep_stale=True)

    logger.info(f"Queued analytics refresh for {len(faculty_ids)} faculty members")
    return {"status": "success", "queued": len(faculty_ids), "faculty_ids": faculty_ids}
