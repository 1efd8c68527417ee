"""
Feature service building per-student feature vectors for clustering.
"""
import logging
from typing import Dict, List, Optional, Tuple

from app.models.analytics import (
    AttendanceSummary,
    ClassContext,
    ComputationStage,
    StudentFeature,
    StudentRecord,
)
from app.services.concurrency import CancellationToken, ProgressReporter, fan_out
from app.services.config_service import config_service
from app.services.errors import ComputationError, SourceFetchError
from app.services.metrics_service import grade_percentage
from app.services.record_source import RecordSource

logger = logging.getLogger("app.features")

# Progress range owned by feature building
PROGRESS_START = 25
PROGRESS_END = 60


def _clamp(value: float) -> float:
    return min(100.0, max(0.0, float(value)))


class FeatureService:
    """Builds one StudentFeature per (student, class) pair."""

    def __init__(self, record_source: RecordSource, max_workers: Optional[int] = None):
        self.record_source = record_source
        self.max_workers = max_workers or config_service.get_int("ANALYTICS_MAX_WORKERS")
        self.logger = logger

    def build_features(
        self,
        classes: List[ClassContext],
        progress: Optional[ProgressReporter] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[StudentFeature]:
        """
        Build feature vectors for every enrolled student of every class.

        A student in several classes gets one row per class.

        Args:
            classes: Classes taught by the faculty member
            progress: Optional progress reporter (25%..60%)
            cancel_token: Optional token to abort the fan-out

        Returns:
            List of StudentFeature
        """
        # (class, student, per-student scores) work items
        work: List[Tuple[ClassContext, StudentRecord, List[float]]] = []

        for class_context, gradebook, error in fan_out(
            self._load_gradebook, classes, self.max_workers, cancel_token
        ):
            if error is not None:
                if not isinstance(error, SourceFetchError):
                    raise ComputationError(f"Gradebook failed for class {class_context.section_id}: {error}") from error
                self.logger.warning(f"No students for class {class_context.section_id}: {error}")
                continue
            students, scores_by_enrollment = gradebook
            for student in students:
                work.append((class_context, student, scores_by_enrollment.get(student.enrollment_id, [])))

        total = len(work)
        self.logger.info(f"Building features for {total} students across {len(classes)} classes")

        results: List[Tuple[int, StudentFeature]] = []
        for (index, _), feature, error in fan_out(
            lambda indexed: self._build_feature(indexed[1]), list(enumerate(work)), self.max_workers, cancel_token
        ):
            if error is not None:
                raise ComputationError(f"Feature build failed: {error}") from error
            results.append((index, feature))
            if progress is not None:
                progress.report_fraction(ComputationStage.FEATURES, len(results), total, PROGRESS_START, PROGRESS_END)

        if total == 0 and progress is not None:
            progress.report(ComputationStage.FEATURES, PROGRESS_END)

        # Completion order varies between runs; keep class/roster order
        results.sort(key=lambda r: r[0])
        return [feature for _, feature in results]

    def _load_gradebook(self, class_context: ClassContext) -> Tuple[List[StudentRecord], Dict[str, List[float]]]:
        """
        Students of a class and their valid grade percentages keyed by enrollment.

        A failed student list propagates; failed grade queries count as no grades.
        """
        students = self.record_source.students_for_class(class_context.section_id)
        scores: Dict[str, List[float]] = {}
        if not students:
            return students, scores

        try:
            sub_assessments = self.record_source.published_sub_assessments(class_context.syllabus_id)
        except SourceFetchError as e:
            self.logger.warning(f"No assessments for class {class_context.section_id}: {e}")
            return students, scores

        for sub_assessment in sub_assessments:
            try:
                rows = self.record_source.grades_for_sub_assessment(sub_assessment.sub_assessment_id)
            except SourceFetchError as e:
                self.logger.warning(f"No grades for sub-assessment {sub_assessment.sub_assessment_id}: {e}")
                continue

            for row in rows:
                percentage = grade_percentage(row.total_score, sub_assessment.total_points)
                if percentage is not None:
                    scores.setdefault(row.enrollment_id, []).append(percentage)

        return students, scores

    def _build_feature(self, item: Tuple[ClassContext, StudentRecord, List[float]]) -> StudentFeature:
        class_context, student, scores = item

        try:
            attendance = self.record_source.attendance_summary_for_enrollment(student.enrollment_id)
        except SourceFetchError as e:
            self.logger.warning(f"Attendance unavailable for enrollment {student.enrollment_id}: {e}")
            attendance = AttendanceSummary()

        average_grade = sum(scores) / len(scores) if scores else 0.0

        return StudentFeature(
            student_id=student.student_id,
            enrollment_id=student.enrollment_id,
            full_name=student.full_name,
            attendance_rate=_clamp(attendance.attendance_rate),
            average_grade=_clamp(average_grade),
            total_sessions=max(0, attendance.total_sessions),
            completed_assessments=len(scores),
            section_id=class_context.section_id,
        )
