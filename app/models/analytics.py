"""
Analytics domain models for faculty performance analytics.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClusterLabel(str, Enum):
    """Behavioral segments, in centroid declaration order."""

    HIGH_PERFORMERS = "High Performers"
    CONSISTENT = "Consistent"
    AT_RISK = "At-Risk"
    STRUGGLING = "Struggling"


class InsightKind(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    POSITIVE = "positive"
    PERFORMANCE = "performance"
    ENGAGEMENT = "engagement"
    ATTENDANCE = "attendance"


class RecommendationPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class _Record(BaseModel):
    """Base for immutable records; unknown API fields are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)


# Record source rows


class ClassContext(_Record):
    """One class (section course) taught by a faculty member."""

    section_id: str = Field(description="Section course ID")
    syllabus_id: str = Field(description="Syllabus ID the assessments hang off")
    course_code: Optional[str] = Field(default=None)
    course_title: Optional[str] = Field(default=None)


class StudentRecord(_Record):
    student_id: str
    enrollment_id: str
    full_name: Optional[str] = None


class AssessmentRecord(_Record):
    assessment_id: str


class SubAssessmentRecord(_Record):
    sub_assessment_id: str
    total_points: float = 0.0
    is_published: bool = False

    @field_validator("total_points", mode="before")
    @classmethod
    def _null_points(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("is_published", mode="before")
    @classmethod
    def _null_published(cls, value: Any) -> Any:
        return False if value is None else value


class GradeRecord(_Record):
    enrollment_id: str
    total_score: Optional[float] = None


class AttendanceSummary(_Record):
    attendance_rate: float = 0.0
    total_sessions: int = 0

    @field_validator("attendance_rate", "total_sessions", mode="before")
    @classmethod
    def _null_to_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("total_sessions", mode="before")
    @classmethod
    def _numeric_sessions(cls, value: Any) -> Any:
        # COUNT(*) may arrive as "12"
        if isinstance(value, str):
            return int(float(value))
        return value


# Pipeline values


class StudentFeature(_Record):
    """Feature vector for one (student, class) pair."""

    student_id: str
    enrollment_id: str
    full_name: Optional[str] = None
    attendance_rate: float = Field(default=0.0, ge=0, le=100)
    average_grade: float = Field(default=0.0, ge=0, le=100)
    total_sessions: int = 0
    completed_assessments: int = 0
    section_id: Optional[str] = None


class PerformanceMetrics(_Record):
    """Class-wide aggregates for a faculty member."""

    average_grade: float = 0.0
    completion_rate: float = 0.0
    total_students: int = 0
    at_risk_students: int = 0
    active_courses: int = 0


class CoursePerformance(_Record):
    """Per-class breakdown of the faculty aggregates."""

    section_id: str
    course_code: Optional[str] = None
    course_title: Optional[str] = None
    average_grade: float = 0.0
    completion_rate: float = 0.0
    total_students: int = 0
    at_risk_students: int = 0
    attendance_rate: float = 0.0
    data_available: bool = True


class StudentSummary(_Record):
    student_id: str
    enrollment_id: str
    full_name: Optional[str] = None
    attendance_rate: float = 0.0
    average_grade: float = 0.0

    @classmethod
    def from_feature(cls, feature: StudentFeature) -> "StudentSummary":
        return cls(
            student_id=feature.student_id,
            enrollment_id=feature.enrollment_id,
            full_name=feature.full_name,
            attendance_rate=feature.attendance_rate,
            average_grade=feature.average_grade,
        )


class CentroidThresholds(_Record):
    """Centroid coordinates in normalized [0, 1] space."""

    attendance: float
    grade: float


class Cluster(_Record):
    label: ClusterLabel
    student_count: int = 0
    students: List[StudentSummary] = Field(default_factory=list)
    centroid_thresholds: CentroidThresholds


class Insight(_Record):
    kind: InsightKind
    title: str
    description: str
    details: Dict[str, Any] = Field(default_factory=dict)


class Recommendation(_Record):
    kind: str
    priority: RecommendationPriority
    title: str
    description: str
    action: str


class AnalyticsBundle(_Record):
    """Combined output of one analytics run; the unit of caching."""

    clustering: List[Cluster] = Field(default_factory=list)
    insights: List[Insight] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    performance: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    courses: List[CoursePerformance] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "AnalyticsBundle":
        return cls()

    def get_cluster(self, label: ClusterLabel) -> Optional[Cluster]:
        return next((c for c in self.clustering if c.label == label), None)

    def get_course(self, section_id: str) -> Optional[CoursePerformance]:
        return next((c for c in self.courses if c.section_id == section_id), None)

    def cluster_for_enrollment(self, enrollment_id: str) -> Optional[Cluster]:
        """Cluster holding the given enrollment, or None when it was not clustered."""
        for cluster in self.clustering:
            if any(student.enrollment_id == enrollment_id for student in cluster.students):
                return cluster
        return None


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite, fake clock) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CacheEntry(_Record):
    """Last computed bundle for a faculty member."""

    faculty_id: str
    bundle: AnalyticsBundle
    computed_at: datetime

    def age_hours(self, now: datetime) -> float:
        """Exact age in hours relative to ``now``."""
        age = (as_utc(now) - as_utc(self.computed_at)).total_seconds() / 3600
        return max(age, 0.0)

    def rounded_age_hours(self, now: datetime) -> int:
        return int(round(self.age_hours(now)))

    def is_expired(self, now: datetime, max_age_hours: float) -> bool:
        return self.age_hours(now) >= max_age_hours


# Orchestrator state


class ComputationState(str, Enum):
    IDLE = "idle"
    COMPUTING = "computing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ComputationStage(str, Enum):
    """Pipeline stages; the value is the progress checkpoint in percent."""

    INIT = "init"
    METRICS = "metrics"
    FEATURES = "features"
    CLUSTERING = "clustering"
    INSIGHTS = "insights"
    RECOMMENDATIONS = "recommendations"
    CACHE_WRITE = "cache_write"
    DONE = "done"

    @property
    def checkpoint(self) -> int:
        return STAGE_CHECKPOINTS[self]


STAGE_CHECKPOINTS: Dict[ComputationStage, int] = {
    ComputationStage.INIT: 0,
    ComputationStage.METRICS: 20,
    ComputationStage.FEATURES: 25,
    ComputationStage.CLUSTERING: 60,
    ComputationStage.INSIGHTS: 80,
    ComputationStage.RECOMMENDATIONS: 90,
    ComputationStage.CACHE_WRITE: 95,
    ComputationStage.DONE: 100,
}


class ComputationStatus(BaseModel):
    """Mutable status of the latest run for a faculty member."""

    faculty_id: str
    state: ComputationState = ComputationState.IDLE
    stage: Optional[ComputationStage] = None
    progress: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
