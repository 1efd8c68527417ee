"""
Analytics service orchestrating the faculty analytics pipeline.
"""
import logging
import threading
from collections import OrderedDict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from app.models.analytics import (
    AnalyticsBundle,
    CacheEntry,
    ComputationStage,
    ComputationState,
    ComputationStatus,
)
from app.services.analytics_cache_service import AnalyticsCacheService
from app.services.cluster_service import ClusterService
from app.services.concurrency import CancellationToken, ProgressCallback, ProgressReporter
from app.services.config_service import config_service
from app.services.errors import CacheError, ComputationCancelled, SourceFetchError
from app.services.feature_service import FeatureService
from app.services.insight_service import InsightService
from app.services.metrics_service import MetricsService
from app.services.recommendation_service import RecommendationService
from app.services.record_source import HttpRecordSource, RecordSource

logger = logging.getLogger("app.analytics")


class AnalyticsService:
    """
    Runs metrics, features, clustering, insights and recommendations for a
    faculty member and caches the resulting bundle.

    Callers always get a bundle back: failures and cancellations produce
    AnalyticsBundle.empty(). Runs for the same faculty are serialized.
    """

    def __init__(
        self,
        record_source: Optional[RecordSource] = None,
        cache: Optional[AnalyticsCacheService] = None,
        metrics_service: Optional[MetricsService] = None,
        feature_service: Optional[FeatureService] = None,
        cluster_service: Optional[ClusterService] = None,
        insight_service: Optional[InsightService] = None,
        recommendation_service: Optional[RecommendationService] = None,
        max_workers: Optional[int] = None,
        max_tracked_statuses: Optional[int] = None,
    ):
        self.record_source = record_source or HttpRecordSource()
        self.cache = cache or AnalyticsCacheService()
        self.metrics_service = metrics_service or MetricsService(self.record_source, max_workers)
        self.feature_service = feature_service or FeatureService(self.record_source, max_workers)
        self.cluster_service = cluster_service or ClusterService()
        self.insight_service = insight_service or InsightService()
        self.recommendation_service = recommendation_service or RecommendationService()
        self.max_tracked_statuses = max_tracked_statuses or config_service.get_int("ANALYTICS_MAX_TRACKED_STATUSES")
        self.logger = logger

        self._lock = threading.Lock()
        # faculty_id -> [lock, holders and waiters]; dropped when nobody uses it
        self._faculty_locks: Dict[str, List] = {}
        self._active_tokens: Dict[str, CancellationToken] = {}
        # Oldest finished statuses are evicted past max_tracked_statuses
        self._statuses: "OrderedDict[str, ComputationStatus]" = OrderedDict()

    def compute_analytics(
        self,
        faculty_id: str,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        force_refresh: bool = False,
    ) -> AnalyticsBundle:
        """
        Get analytics for a faculty member, from cache when fresh.

        Args:
            faculty_id: Faculty ID
            progress_callback: Called with (stage, percent); percent never decreases
            cancel_token: Token that aborts this run when cancelled
            force_refresh: Skip the cache lookup

        Returns:
            AnalyticsBundle (empty on failure or cancellation)
        """
        reporter = ProgressReporter(progress_callback)

        if not force_refresh:
            cached = self._fresh_bundle(faculty_id)
            if cached is not None:
                reporter.report(ComputationStage.DONE)
                return cached

        with self._faculty_lock(faculty_id):
            # Another run may have filled the cache while we waited
            if not force_refresh:
                cached = self._fresh_bundle(faculty_id)
                if cached is not None:
                    self.logger.info(f"Analytics for faculty {faculty_id} computed by a concurrent run")
                    reporter.report(ComputationStage.DONE)
                    return cached

            token = cancel_token or CancellationToken()
            with self._lock:
                self._active_tokens[faculty_id] = token
            try:
                return self._run_pipeline(faculty_id, reporter, token)
            finally:
                with self._lock:
                    if self._active_tokens.get(faculty_id) is token:
                        del self._active_tokens[faculty_id]

    def get_cached_analytics(self, faculty_id: str) -> Optional[CacheEntry]:
        """Cached entry, expired or not; None when absent or unreadable."""
        try:
            return self.cache.get(faculty_id)
        except CacheError as e:
            self.logger.error(f"Analytics cache read failed for faculty {faculty_id}: {e}")
            return None

    def refresh_analytics(
        self,
        faculty_id: str,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        invalidate: bool = True,
    ) -> AnalyticsBundle:
        """
        Cancel any in-flight run, drop the cached entry and recompute.

        With ``invalidate=False`` the cached entry is kept until a successful
        run replaces it, so a failed recompute leaves the last good bundle.
        """
        self.cancel(faculty_id, reason="superseded by refresh")

        if invalidate:
            try:
                self.cache.invalidate(faculty_id)
            except CacheError as e:
                self.logger.error(f"Analytics cache invalidation failed for faculty {faculty_id}: {e}")

        return self.compute_analytics(
            faculty_id, progress_callback=progress_callback, cancel_token=cancel_token, force_refresh=True
        )

    def cancel(self, faculty_id: str, reason: str = "cancelled") -> bool:
        """Cancel the in-flight run for a faculty member, if any."""
        with self._lock:
            token = self._active_tokens.get(faculty_id)
        if token is None:
            return False

        self.logger.info(f"Cancelling analytics run for faculty {faculty_id}: {reason}")
        token.cancel(reason)
        return True

    def get_status(self, faculty_id: str) -> ComputationStatus:
        with self._lock:
            status = self._statuses.get(faculty_id)
            if status is None:
                return ComputationStatus(faculty_id=faculty_id)
            return status.model_copy()

    def _fresh_bundle(self, faculty_id: str) -> Optional[AnalyticsBundle]:
        entry = self.get_cached_analytics(faculty_id)
        if entry is None:
            return None
        if self.cache.is_expired(entry):
            self.logger.info(f"Cached analytics for faculty {faculty_id} expired, recomputing")
            return None
        self.logger.info(f"Serving cached analytics for faculty {faculty_id}")
        return entry.bundle

    @contextmanager
    def _faculty_lock(self, faculty_id: str) -> Iterator[None]:
        with self._lock:
            entry = self._faculty_locks.setdefault(faculty_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._faculty_locks[faculty_id]

    def _track_status(self, status: ComputationStatus) -> None:
        """Register a run's status; the caller holds ``self._lock``."""
        self._statuses[status.faculty_id] = status
        self._statuses.move_to_end(status.faculty_id)
        for faculty_id in list(self._statuses):
            if len(self._statuses) <= self.max_tracked_statuses:
                break
            if self._statuses[faculty_id].state != ComputationState.COMPUTING:
                del self._statuses[faculty_id]

    def _run_pipeline(
        self, faculty_id: str, reporter: ProgressReporter, token: CancellationToken
    ) -> AnalyticsBundle:
        status = ComputationStatus(
            faculty_id=faculty_id, state=ComputationState.COMPUTING, started_at=config_service.now()
        )
        with self._lock:
            self._track_status(status)

        def advance(stage: ComputationStage, percent: Optional[int] = None) -> None:
            token.raise_if_cancelled()
            reporter.report(stage, percent)
            with self._lock:
                status.stage = stage
                status.progress = reporter.progress

        self.logger.info(f"Computing analytics for faculty {faculty_id}")
        try:
            advance(ComputationStage.INIT)
            metrics, classes, courses = self.metrics_service.calculate_faculty_metrics(faculty_id, token)

            advance(ComputationStage.METRICS)
            features = self.feature_service.build_features(classes, reporter, token)
            courses = self.metrics_service.attach_attendance(courses, features)

            advance(ComputationStage.CLUSTERING)
            clusters = self.cluster_service.cluster_students(features)

            advance(ComputationStage.INSIGHTS)
            insights = self.insight_service.generate_insights(clusters, metrics)

            advance(ComputationStage.RECOMMENDATIONS)
            recommendations = self.recommendation_service.generate_recommendations(clusters, insights)

            bundle = AnalyticsBundle(
                clustering=clusters,
                insights=insights,
                recommendations=recommendations,
                performance=metrics,
                courses=courses,
            )

            advance(ComputationStage.CACHE_WRITE)
            try:
                self.cache.put(faculty_id, bundle)
            except CacheError as e:
                self.logger.error(f"Analytics cache write failed for faculty {faculty_id}: {e}")

            self._finish(status, reporter, ComputationState.DONE)
            self.logger.info(
                f"Analytics computed for faculty {faculty_id}: {len(features)} students, "
                f"{len(clusters)} clusters, {len(insights)} insights, {len(recommendations)} recommendations"
            )
            return bundle

        except ComputationCancelled as e:
            self.logger.warning(f"Analytics run for faculty {faculty_id} cancelled: {e}")
            self._finish(status, reporter, ComputationState.CANCELLED, error=str(e))
            return AnalyticsBundle.empty()

        except SourceFetchError as e:
            # The cached bundle, if any, stays in place
            self.logger.error(f"Records unavailable for faculty {faculty_id}, analytics not computed: {e}")
            self._finish(status, reporter, ComputationState.FAILED, error=str(e))
            return AnalyticsBundle.empty()

        except Exception as e:
            self.logger.error(f"Analytics computation failed for faculty {faculty_id}: {e}", exc_info=True)
            self._finish(status, reporter, ComputationState.FAILED, error=str(e))
            return AnalyticsBundle.empty()

    def _finish(
        self,
        status: ComputationStatus,
        reporter: ProgressReporter,
        state: ComputationState,
        error: Optional[str] = None,
    ) -> None:
        # Callers waiting on progress always see completion
        reporter.report(ComputationStage.DONE)
        with self._lock:
            status.state = state
            status.stage = ComputationStage.DONE
            status.progress = reporter.progress
            status.finished_at = config_service.now()
            status.error = error


_analytics_service: Optional[AnalyticsService] = None
_analytics_service_lock = threading.Lock()


def get_analytics_service() -> AnalyticsService:
    """Process-wide service shared by the API and the worker tasks."""
    global _analytics_service
    with _analytics_service_lock:
        if _analytics_service is None:
            _analytics_service = AnalyticsService()
        return _analytics_service
