"""
Pytest configuration and fixtures for faculty analytics tests.
"""

import os
import tempfile
from typing import Dict, List, Optional, Sequence, Tuple

os.environ.setdefault("DB_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import app.main as main_module
from app.database.init_db import init_database
from app.database.session import get_session
from app.main import app
from app.models.analytics import (
    AssessmentRecord,
    AttendanceSummary,
    ClassContext,
    GradeRecord,
    StudentFeature,
    StudentRecord,
    SubAssessmentRecord,
)
from app.models.analytics_cache import AnalyticsCacheRecord  # noqa: F401
from app.services.analytics_cache_service import AnalyticsCacheService
from app.services.analytics_service import AnalyticsService, get_analytics_service
from app.services.cluster_service import NEAREST_CENTROID, ClusterService
from app.services.config_service import config_service
from app.services.errors import SourceFetchError
from app.services.record_source import RecordSource


class FakeRecordSource(RecordSource):
    """In-memory record source with failure injection."""

    def __init__(self):
        self.classes: Dict[str, List[ClassContext]] = {}
        self.students: Dict[str, List[StudentRecord]] = {}
        self.assessments: Dict[str, List[AssessmentRecord]] = {}
        self.sub_assessments: Dict[str, List[SubAssessmentRecord]] = {}
        self.grades: Dict[str, List[GradeRecord]] = {}
        self.attendance: Dict[str, AttendanceSummary] = {}
        self.failures = set()
        self.calls: List[Tuple[str, str]] = []

    def fail(self, query: str, key: str) -> None:
        self.failures.add((query, key))

    def _check(self, query: str, key: str) -> None:
        self.calls.append((query, key))
        if (query, key) in self.failures:
            raise SourceFetchError(query, key, "injected failure")

    def classes_for_faculty(self, faculty_id):
        self._check("classes_for_faculty", faculty_id)
        return list(self.classes.get(faculty_id, []))

    def students_for_class(self, section_id):
        self._check("students_for_class", section_id)
        return list(self.students.get(section_id, []))

    def assessments_for_class(self, syllabus_id):
        self._check("assessments_for_class", syllabus_id)
        return list(self.assessments.get(syllabus_id, []))

    def sub_assessments_for_assessment(self, assessment_id):
        self._check("sub_assessments_for_assessment", assessment_id)
        return list(self.sub_assessments.get(assessment_id, []))

    def grades_for_sub_assessment(self, sub_assessment_id):
        self._check("grades_for_sub_assessment", sub_assessment_id)
        return list(self.grades.get(sub_assessment_id, []))

    def attendance_summary_for_enrollment(self, enrollment_id):
        self._check("attendance_summary_for_enrollment", enrollment_id)
        return self.attendance.get(enrollment_id, AttendanceSummary())

    def add_class(
        self,
        faculty_id: str,
        section_id: str,
        students: Sequence[Tuple[str, str, float]] = (),
        sub_assessments: Sequence[Tuple[float, Dict[str, Optional[float]]]] = (),
        published: bool = True,
    ) -> ClassContext:
        """
        Register a class.

        Args:
            students: (student_id, full_name, attendance_rate) tuples
            sub_assessments: (total_points, {student_id: score}) tuples

        Enrollment IDs are "<section_id>-<student_id>".
        """
        context = ClassContext(
            section_id=section_id,
            syllabus_id=f"syl-{section_id}",
            course_code=f"CS-{section_id}",
            course_title=f"Course {section_id}",
        )
        self.classes.setdefault(faculty_id, []).append(context)

        self.students[section_id] = []
        for student_id, full_name, attendance_rate in students:
            enrollment_id = f"{section_id}-{student_id}"
            self.students[section_id].append(
                StudentRecord(student_id=student_id, enrollment_id=enrollment_id, full_name=full_name)
            )
            self.attendance[enrollment_id] = AttendanceSummary(attendance_rate=attendance_rate, total_sessions=20)

        assessment_id = f"a-{section_id}"
        self.assessments[context.syllabus_id] = [AssessmentRecord(assessment_id=assessment_id)]
        self.sub_assessments[assessment_id] = []
        for index, (total_points, scores) in enumerate(sub_assessments):
            sub_assessment_id = f"{section_id}-s{index}"
            self.sub_assessments[assessment_id].append(
                SubAssessmentRecord(
                    sub_assessment_id=sub_assessment_id, total_points=total_points, is_published=published
                )
            )
            self.grades[sub_assessment_id] = [
                GradeRecord(enrollment_id=f"{section_id}-{student_id}", total_score=score)
                for student_id, score in scores.items()
            ]

        return context


def make_feature(student_id: str, attendance_rate: float, average_grade: float) -> StudentFeature:
    return StudentFeature(
        student_id=student_id,
        enrollment_id=f"e-{student_id}",
        full_name=f"Student {student_id}",
        attendance_rate=attendance_rate,
        average_grade=average_grade,
    )


@pytest.fixture(autouse=True)
def reset_config():
    """Settings are cached per process; start each test from the environment."""
    config_service.reset()
    yield
    config_service.reset()


@pytest.fixture
def record_source():
    return FakeRecordSource()


@pytest.fixture(scope="function")
def test_engine():
    """Engine on a temporary SQLite database for each test."""
    fd, temp_db = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    engine = create_engine(f"sqlite:///{temp_db}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(bind=engine)

    try:
        yield engine
    finally:
        engine.dispose()
        try:
            os.unlink(temp_db)
        except OSError:
            pass


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def isolated_db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache_service(session_factory):
    return AnalyticsCacheService(session_factory=session_factory, max_age_hours=24)


@pytest.fixture
def analytics_service(record_source, cache_service):
    return AnalyticsService(
        record_source=record_source,
        cache=cache_service,
        cluster_service=ClusterService(NEAREST_CENTROID),
        max_workers=4,
    )


@pytest.fixture
def client(analytics_service, isolated_db_session, test_engine, monkeypatch):
    """Create a test client with service and database dependency overrides."""
    # Startup creates tables in the per-test database, not the configured one
    monkeypatch.setattr(main_module, "init_database", lambda: init_database(bind=test_engine))

    def override_get_session():
        try:
            yield isolated_db_session
        finally:
            pass

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_analytics_service] = lambda: analytics_service

    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
