"""
Metrics service for class-wide performance aggregates of a faculty member.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

from app.models.analytics import ClassContext, CoursePerformance, PerformanceMetrics, StudentFeature
from app.services.concurrency import CancellationToken, fan_out
from app.services.config_service import config_service
from app.services.errors import ComputationError, SourceFetchError
from app.services.record_source import RecordSource

logger = logging.getLogger("app.metrics")

# A graded submission below this percentage marks an at-risk student
AT_RISK_THRESHOLD = 75.0


def grade_percentage(score: Optional[float], total_points: Optional[float]) -> Optional[float]:
    """
    Percentage for one graded row.

    Returns None when the row cannot count: no score, no points to divide by,
    or a result outside 0..100.
    """
    if score is None or total_points is None or total_points <= 0:
        return None

    percentage = score / total_points * 100
    if not math.isfinite(percentage) or percentage < 0 or percentage > 100:
        return None
    return percentage


def _empty_totals() -> Dict[str, float]:
    return {
        "students": 0,
        "possible_grades": 0,
        "completed_grades": 0,
        "grade_sum": 0.0,
        "grade_count": 0,
        "at_risk": 0,
    }


def _rates(totals: Dict[str, float]) -> Tuple[float, float]:
    """(average_grade, completion_rate) from summed totals; 0 when undefined."""
    average_grade = round(totals["grade_sum"] / totals["grade_count"], 2) if totals["grade_count"] > 0 else 0
    if totals["possible_grades"] > 0:
        completion_rate = min(100, round(totals["completed_grades"] / totals["possible_grades"] * 100))
    else:
        completion_rate = 0
    return average_grade, completion_rate


class MetricsService:
    """Service for calculating performance metrics across a faculty member's classes."""

    def __init__(self, record_source: RecordSource, max_workers: Optional[int] = None):
        self.record_source = record_source
        self.max_workers = max_workers or config_service.get_int("ANALYTICS_MAX_WORKERS")
        self.logger = logger

    def get_faculty_classes(self, faculty_id: str, strict: bool = False) -> List[ClassContext]:
        """
        Fetch the faculty member's classes.

        A failed fetch means no classes, unless ``strict`` is set, in which
        case the SourceFetchError propagates.
        """
        try:
            classes = self.record_source.classes_for_faculty(faculty_id)
            self.logger.info(f"Found {len(classes)} classes for faculty {faculty_id}")
            return classes
        except SourceFetchError as e:
            self.logger.error(f"Error fetching classes for faculty {faculty_id}: {e}")
            if strict:
                raise
            return []

    def calculate_faculty_metrics(
        self, faculty_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> Tuple[PerformanceMetrics, List[ClassContext], List[CoursePerformance]]:
        """
        Calculate metrics for a faculty member.

        Raises:
            SourceFetchError: The class list could not be fetched. Zeroed
                metrics would be indistinguishable from a faculty member
                without classes.

        Returns:
            Tuple of (metrics, classes, courses) so later stages reuse the class list
        """
        classes = self.get_faculty_classes(faculty_id, strict=True)
        metrics, courses = self._aggregate(classes, cancel_token)
        return metrics, classes, courses

    def calculate_performance_metrics(
        self, classes: List[ClassContext], cancel_token: Optional[CancellationToken] = None
    ) -> PerformanceMetrics:
        """
        Aggregate grade and completion metrics over classes.

        A class whose data cannot be fetched contributes nothing to the sums
        but still counts as an active course.

        Args:
            classes: Classes taught by the faculty member
            cancel_token: Optional token to abort the fan-out

        Returns:
            PerformanceMetrics
        """
        metrics, _ = self._aggregate(classes, cancel_token)
        return metrics

    def attach_attendance(
        self, courses: List[CoursePerformance], features: List[StudentFeature]
    ) -> List[CoursePerformance]:
        """Fill each course's attendance rate with the mean over its students."""
        rates: Dict[str, List[float]] = {}
        for feature in features:
            if feature.section_id is not None:
                rates.setdefault(feature.section_id, []).append(feature.attendance_rate)

        result = []
        for course in courses:
            section_rates = rates.get(course.section_id)
            if section_rates:
                course = course.model_copy(
                    update={"attendance_rate": round(sum(section_rates) / len(section_rates), 2)}
                )
            result.append(course)
        return result

    def _aggregate(
        self, classes: List[ClassContext], cancel_token: Optional[CancellationToken]
    ) -> Tuple[PerformanceMetrics, List[CoursePerformance]]:
        totals = _empty_totals()
        class_totals: Dict[int, Dict[str, float]] = {}

        for (index, class_context), result, error in fan_out(
            self._indexed_class_totals, list(enumerate(classes)), self.max_workers, cancel_token
        ):
            if error is not None:
                if not isinstance(error, SourceFetchError):
                    raise ComputationError(f"Metrics failed for class {class_context.section_id}: {error}") from error
                self.logger.warning(f"Class {class_context.section_id} excluded from metrics: {error}")
                continue
            class_totals[index] = result
            for key, value in result.items():
                totals[key] += value

        average_grade, completion_rate = _rates(totals)
        metrics = PerformanceMetrics(
            average_grade=average_grade,
            completion_rate=completion_rate,
            total_students=int(totals["students"]),
            at_risk_students=int(totals["at_risk"]),
            active_courses=len(classes),
        )
        self.logger.info(f"Performance metrics calculated: {metrics.model_dump()}")

        courses = []
        for index, class_context in enumerate(classes):
            result = class_totals.get(index)
            if result is None:
                courses.append(
                    CoursePerformance(
                        section_id=class_context.section_id,
                        course_code=class_context.course_code,
                        course_title=class_context.course_title,
                        data_available=False,
                    )
                )
                continue
            course_average, course_completion = _rates(result)
            courses.append(
                CoursePerformance(
                    section_id=class_context.section_id,
                    course_code=class_context.course_code,
                    course_title=class_context.course_title,
                    average_grade=course_average,
                    completion_rate=course_completion,
                    total_students=int(result["students"]),
                    at_risk_students=int(result["at_risk"]),
                )
            )

        return metrics, courses

    def _indexed_class_totals(self, item: Tuple[int, ClassContext]) -> Dict[str, float]:
        return self._calculate_class_totals(item[1])

    def _calculate_class_totals(self, class_context: ClassContext) -> Dict[str, float]:
        """Sums for one class. Any fetch failure propagates so the class is dropped as a whole."""
        totals = _empty_totals()

        students = self.record_source.students_for_class(class_context.section_id)
        sub_assessments = self.record_source.published_sub_assessments(class_context.syllabus_id, strict=True)

        totals["students"] = len(students)
        totals["possible_grades"] = len(students) * len(sub_assessments)

        for sub_assessment in sub_assessments:
            if sub_assessment.total_points <= 0:
                self.logger.warning(
                    f"Sub-assessment {sub_assessment.sub_assessment_id} has total_points={sub_assessment.total_points}, "
                    f"its scores are excluded from averages"
                )

            for row in self.record_source.grades_for_sub_assessment(sub_assessment.sub_assessment_id):
                if row.total_score is None:
                    continue

                totals["completed_grades"] += 1

                percentage = grade_percentage(row.total_score, sub_assessment.total_points)
                if percentage is None:
                    if sub_assessment.total_points > 0:
                        self.logger.warning(
                            f"Discarding out-of-range grade for enrollment {row.enrollment_id} on sub-assessment "
                            f"{sub_assessment.sub_assessment_id}: {row.total_score}/{sub_assessment.total_points}"
                        )
                    continue

                totals["grade_sum"] += percentage
                totals["grade_count"] += 1
                if percentage < AT_RISK_THRESHOLD:
                    totals["at_risk"] += 1

        return totals
