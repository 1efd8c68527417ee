"""
Analytics cache service storing the latest bundle per faculty member.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database.session import SessionLocal, get_db_session
from app.models.analytics import AnalyticsBundle, CacheEntry, as_utc
from app.models.analytics_cache import AnalyticsCacheRecord
from app.services.config_service import config_service
from app.services.errors import CacheError

logger = logging.getLogger("app.analytics_cache")


class AnalyticsCacheService:
    """
    Cache of AnalyticsBundle per faculty, backed by the analytics_cache table.

    Every call uses its own session, so different faculty IDs can be read
    and written concurrently. Failures raise CacheError.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None, max_age_hours: Optional[float] = None):
        self.session_factory = session_factory or SessionLocal
        self.max_age_hours = (
            max_age_hours if max_age_hours is not None else config_service.get_float("ANALYTICS_CACHE_MAX_AGE_HOURS")
        )
        self.logger = logger

    def get(self, faculty_id: str) -> Optional[CacheEntry]:
        """
        Get the cached entry for a faculty member.

        Returns:
            CacheEntry (possibly expired) or None if nothing is cached
        """
        try:
            with get_db_session(self.session_factory) as db:
                record = db.query(AnalyticsCacheRecord).filter(AnalyticsCacheRecord.faculty_id == faculty_id).first()
                if record is None:
                    self.logger.debug(f"No cached analytics for faculty {faculty_id}")
                    return None
                data_json, computed_at = record.data_json, record.computed_at
        except SQLAlchemyError as e:
            raise CacheError(f"Failed to read analytics cache for faculty {faculty_id}: {e}") from e

        try:
            bundle = AnalyticsBundle.model_validate_json(data_json)
        except ValidationError as e:
            raise CacheError(f"Corrupt analytics cache for faculty {faculty_id}: {e.error_count()} errors") from e

        return CacheEntry(faculty_id=faculty_id, bundle=bundle, computed_at=as_utc(computed_at))

    def put(self, faculty_id: str, bundle: AnalyticsBundle, computed_at: Optional[datetime] = None) -> CacheEntry:
        """
        Store a bundle, replacing any previous entry in one transaction.
        """
        computed_at = as_utc(computed_at or config_service.now())
        try:
            with get_db_session(self.session_factory) as db:
                db.query(AnalyticsCacheRecord).filter(AnalyticsCacheRecord.faculty_id == faculty_id).delete()
                db.add(
                    AnalyticsCacheRecord(
                        faculty_id=faculty_id,
                        data_json=bundle.model_dump_json(),
                        computed_at=computed_at,
                    )
                )
        except SQLAlchemyError as e:
            raise CacheError(f"Failed to write analytics cache for faculty {faculty_id}: {e}") from e

        self.logger.info(f"Cached analytics for faculty {faculty_id} at {computed_at.isoformat()}")
        return CacheEntry(faculty_id=faculty_id, bundle=bundle, computed_at=computed_at)

    def invalidate(self, faculty_id: str) -> int:
        """
        Remove the cached entry for a faculty member.

        Returns:
            Number of deleted rows
        """
        try:
            with get_db_session(self.session_factory) as db:
                deleted = (
                    db.query(AnalyticsCacheRecord).filter(AnalyticsCacheRecord.faculty_id == faculty_id).delete()
                )
        except SQLAlchemyError as e:
            raise CacheError(f"Failed to invalidate analytics cache for faculty {faculty_id}: {e}") from e

        self.logger.info(f"Invalidated analytics cache for faculty {faculty_id} ({deleted} entries)")
        return deleted

    def is_expired(self, entry: CacheEntry, now: Optional[datetime] = None) -> bool:
        return entry.is_expired(now or config_service.now(), self.max_age_hours)

    def describe(self, faculty_id: str) -> Dict[str, Any]:
        """Cache status in the shape served by the cache endpoint."""
        entry = self.get(faculty_id)
        if entry is None:
            return {"cached": False, "message": "No cached data found"}

        now = config_service.now()
        status = {
            "last_updated": entry.computed_at.isoformat(),
            "age_hours": entry.rounded_age_hours(now),
        }
        if self.is_expired(entry, now):
            return {"cached": False, "message": "Cache expired", **status}
        return {"cached": True, "data": entry.bundle.model_dump(mode="json"), **status}

    def stale_faculty_ids(self) -> List[str]:
        """Faculty IDs whose cached entries are older than the max age."""
        now = config_service.now()
        try:
            with get_db_session(self.session_factory) as db:
                rows = db.query(AnalyticsCacheRecord.faculty_id, AnalyticsCacheRecord.computed_at).all()
        except SQLAlchemyError as e:
            raise CacheError(f"Failed to list analytics cache entries: {e}") from e

        return [
            faculty_id
            for faculty_id, computed_at in rows
            if (as_utc(now) - as_utc(computed_at)).total_seconds() / 3600 >= self.max_age_hours
        ]
