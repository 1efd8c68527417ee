"""
Faculty analytics API routes.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from app.models.analytics import AnalyticsBundle, ComputationStatus, CoursePerformance
from app.services.analytics_service import AnalyticsService, get_analytics_service
from app.services.errors import CacheError
from worker.analytics_tasks import refresh_faculty_analytics

logger = logging.getLogger("app.routes.analytics")
router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/faculty/{faculty_id}", response_model=AnalyticsBundle)
def get_faculty_analytics(
    faculty_id: str, service: AnalyticsService = Depends(get_analytics_service)
) -> AnalyticsBundle:
    """
    Get analytics for a faculty member, computing them on a cache miss.

    Args:
        faculty_id: Faculty ID

    Returns:
        AnalyticsBundle (empty when the computation failed)
    """
    try:
        logger.info(f"Analytics requested for faculty {faculty_id}")
        return service.compute_analytics(faculty_id)
    except Exception as e:
        logger.error(f"Error getting analytics for faculty {faculty_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/faculty/{faculty_id}/courses/{section_id}", response_model=CoursePerformance)
def get_course_metrics(
    faculty_id: str, section_id: str, service: AnalyticsService = Depends(get_analytics_service)
) -> CoursePerformance:
    """
    Get one class's breakdown from the faculty member's analytics.

    Raises:
        HTTPException 404: The class is not among the faculty member's classes
    """
    course = service.compute_analytics(faculty_id).get_course(section_id)
    if course is None:
        raise HTTPException(status_code=404, detail=f"Course {section_id} not found for faculty {faculty_id}")
    return course


@router.get("/faculty/{faculty_id}/enrollments/{enrollment_id}/cluster")
def get_enrollment_cluster(
    faculty_id: str, enrollment_id: str, service: AnalyticsService = Depends(get_analytics_service)
) -> Dict[str, Any]:
    """
    Get the cluster a student enrollment was assigned to.

    Returns:
        {enrollment_id, cluster, centroid_thresholds, student}
    """
    bundle = service.compute_analytics(faculty_id)
    cluster = bundle.cluster_for_enrollment(enrollment_id)
    if cluster is None:
        raise HTTPException(status_code=404, detail=f"Enrollment {enrollment_id} not clustered for faculty {faculty_id}")

    student = next(s for s in cluster.students if s.enrollment_id == enrollment_id)
    return {
        "enrollment_id": enrollment_id,
        "cluster": cluster.label.value,
        "centroid_thresholds": cluster.centroid_thresholds.model_dump(),
        "student": student.model_dump(),
    }


@router.post("/faculty/{faculty_id}/refresh", response_model=AnalyticsBundle)
def refresh_faculty(faculty_id: str, service: AnalyticsService = Depends(get_analytics_service)) -> AnalyticsBundle:
    """Invalidate the cached bundle and recompute it."""
    try:
        logger.info(f"Analytics refresh requested for faculty {faculty_id}")
        return service.refresh_analytics(faculty_id)
    except Exception as e:
        logger.error(f"Error refreshing analytics for faculty {faculty_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/faculty/{faculty_id}/refresh-async")
def refresh_faculty_async(faculty_id: str) -> Dict[str, Any]:
    """
    Queue a background refresh on the worker.

    Returns:
        Dictionary with the Celery task id
    """
    try:
        task = refresh_faculty_analytics.delay(faculty_id)
        logger.info(f"Queued analytics refresh for faculty {faculty_id}: task {task.id}")
        return {"status": "queued", "faculty_id": faculty_id, "task_id": task.id}
    except Exception as e:
        logger.error(f"Error queueing analytics refresh for faculty {faculty_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/faculty/{faculty_id}/status", response_model=ComputationStatus)
def get_faculty_status(
    faculty_id: str, service: AnalyticsService = Depends(get_analytics_service)
) -> ComputationStatus:
    return service.get_status(faculty_id)


@router.get("/cache/faculty/{faculty_id}")
def get_cache_status(faculty_id: str, service: AnalyticsService = Depends(get_analytics_service)) -> Dict[str, Any]:
    """
    Get the cached bundle with its age.

    Returns:
        {cached, data, last_updated, age_hours} or {cached: False, message}
    """
    try:
        return service.cache.describe(faculty_id)
    except CacheError as e:
        logger.error(f"Error reading analytics cache for faculty {faculty_id}: {e}")
        return {"cached": False, "message": "Cache unavailable"}


@router.delete("/cache/faculty/{faculty_id}")
def clear_cache(faculty_id: str, service: AnalyticsService = Depends(get_analytics_service)) -> Dict[str, Any]:
    try:
        deleted_count = service.cache.invalidate(faculty_id)
        return {"success": True, "deleted_count": deleted_count}
    except CacheError as e:
        logger.error(f"Error clearing analytics cache for faculty {faculty_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
