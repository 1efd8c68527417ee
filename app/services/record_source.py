"""
Record source for academic records (classes, students, assessments, grades, attendance).
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from app.models.analytics import (
    AssessmentRecord,
    AttendanceSummary,
    ClassContext,
    GradeRecord,
    StudentRecord,
    SubAssessmentRecord,
)
from app.services.config_service import config_service
from app.services.errors import SourceFetchError

logger = logging.getLogger("app.records")


class RecordSource(ABC):
    """Read-only queries against the academic records store."""

    @abstractmethod
    def classes_for_faculty(self, faculty_id: str) -> List[ClassContext]:
        ...

    @abstractmethod
    def students_for_class(self, section_id: str) -> List[StudentRecord]:
        ...

    @abstractmethod
    def assessments_for_class(self, syllabus_id: str) -> List[AssessmentRecord]:
        ...

    @abstractmethod
    def sub_assessments_for_assessment(self, assessment_id: str) -> List[SubAssessmentRecord]:
        ...

    @abstractmethod
    def grades_for_sub_assessment(self, sub_assessment_id: str) -> List[GradeRecord]:
        ...

    @abstractmethod
    def attendance_summary_for_enrollment(self, enrollment_id: str) -> AttendanceSummary:
        ...

    def published_sub_assessments(self, syllabus_id: str, strict: bool = False) -> List[SubAssessmentRecord]:
        """
        Published sub-assessments across all assessments of a class.

        Raises SourceFetchError if the assessment list cannot be fetched. A
        failing sub-assessment list for one assessment counts as empty unless
        ``strict`` is set, in which case the error propagates.
        """
        published = []
        for assessment in self.assessments_for_class(syllabus_id):
            try:
                subs = self.sub_assessments_for_assessment(assessment.assessment_id)
            except SourceFetchError as e:
                if strict:
                    raise
                logger.warning(f"Skipping assessment {assessment.assessment_id}: {e}")
                continue
            published.extend(s for s in subs if s.is_published)
        return published


class HttpRecordSource(RecordSource):
    """RecordSource backed by the academic records REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or config_service.get_setting("RECORDS_API_BASE_URL")).rstrip("/")
        self.timeout = timeout if timeout is not None else config_service.get_float("RECORDS_API_TIMEOUT")
        self.max_retries = max(1, max_retries if max_retries is not None else config_service.get_int("RECORDS_API_MAX_RETRIES"))
        self.session = session or requests.Session()
        self.backoff_base = 0.5

    def _get(self, query: str, key: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET with retries; 404 means no data."""
        url = f"{self.base_url}{path}"
        last_error = ""

        for attempt in range(self.max_retries):
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)

                if response.status_code == 200:
                    return response.json()
                if response.status_code == 404:
                    logger.debug(f"{query}({key}) returned 404, treating as empty")
                    return None

                last_error = f"HTTP {response.status_code}"
                logger.warning(f"{query}({key}) failed with status {response.status_code} (attempt {attempt + 1}/{self.max_retries})")
                if response.status_code < 500:
                    break

            except requests.exceptions.Timeout:
                last_error = "timeout"
                logger.warning(f"{query}({key}) timeout (attempt {attempt + 1}/{self.max_retries})")
            except ValueError as e:
                last_error = f"invalid JSON: {e}"
                logger.warning(f"{query}({key}) returned invalid JSON: {e}")
                break
            except requests.exceptions.RequestException as e:
                last_error = str(e)
                logger.warning(f"{query}({key}) error (attempt {attempt + 1}/{self.max_retries}): {e}")

            if attempt < self.max_retries - 1:
                time.sleep(self.backoff_base * (2 ** attempt))  # Exponential backoff

        raise SourceFetchError(query, key, last_error)

    def _get_list(self, query: str, key: str, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        payload = self._get(query, key, path, params)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise SourceFetchError(query, key, f"expected a list, got {type(payload).__name__}")
        return payload

    def _parse_rows(self, query: str, key: str, model, rows: List[Dict[str, Any]]) -> List[Any]:
        parsed = []
        for row in rows:
            try:
                parsed.append(model.model_validate(row))
            except ValidationError as e:
                logger.warning(f"{query}({key}) skipped malformed row: {e.error_count()} errors")
        return parsed

    def classes_for_faculty(self, faculty_id: str) -> List[ClassContext]:
        rows = self._get_list("classes_for_faculty", faculty_id, "/syllabus/my", {"facultyId": faculty_id})
        classes = []
        for row in rows:
            if row.get("section_course_id") is None or row.get("syllabus_id") is None:
                continue
            classes.append(
                ClassContext(
                    section_id=row["section_course_id"],
                    syllabus_id=row["syllabus_id"],
                    course_code=row.get("course_code"),
                    course_title=row.get("course_title"),
                )
            )
        return classes

    def students_for_class(self, section_id: str) -> List[StudentRecord]:
        rows = self._get_list("students_for_class", section_id, f"/section-courses/{section_id}/students")
        return self._parse_rows("students_for_class", section_id, StudentRecord, rows)

    def assessments_for_class(self, syllabus_id: str) -> List[AssessmentRecord]:
        rows = self._get_list("assessments_for_class", syllabus_id, f"/assessments/syllabus/{syllabus_id}")
        return self._parse_rows("assessments_for_class", syllabus_id, AssessmentRecord, rows)

    def sub_assessments_for_assessment(self, assessment_id: str) -> List[SubAssessmentRecord]:
        rows = self._get_list(
            "sub_assessments_for_assessment", assessment_id, f"/sub-assessments/assessment/{assessment_id}"
        )
        return self._parse_rows("sub_assessments_for_assessment", assessment_id, SubAssessmentRecord, rows)

    def grades_for_sub_assessment(self, sub_assessment_id: str) -> List[GradeRecord]:
        rows = self._get_list(
            "grades_for_sub_assessment", sub_assessment_id, f"/sub-assessments/{sub_assessment_id}/students-with-grades"
        )
        return self._parse_rows("grades_for_sub_assessment", sub_assessment_id, GradeRecord, rows)

    def attendance_summary_for_enrollment(self, enrollment_id: str) -> AttendanceSummary:
        payload = self._get(
            "attendance_summary_for_enrollment", enrollment_id, f"/attendance/student-analytics/{enrollment_id}"
        )
        if not payload:
            return AttendanceSummary()
        try:
            return AttendanceSummary.model_validate(payload)
        except ValidationError as e:
            raise SourceFetchError("attendance_summary_for_enrollment", enrollment_id, str(e))
