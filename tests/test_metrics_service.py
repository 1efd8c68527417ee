"""
Tests for class-wide performance metrics.
"""
import math

import pytest
from conftest import make_feature

from app.models.analytics import ClassContext
from app.services.errors import SourceFetchError
from app.services.metrics_service import MetricsService, grade_percentage


class TestGradePercentage:
    """Test grade_percentage."""

    def test_valid_percentage(self):
        assert grade_percentage(45, 50) == 90.0

    def test_null_score(self):
        assert grade_percentage(None, 50) is None

    @pytest.mark.parametrize("total_points", [0, -10, None])
    def test_no_points_to_divide_by(self, total_points):
        assert grade_percentage(5, total_points) is None

    def test_score_above_total_points(self):
        assert grade_percentage(120, 100) is None

    def test_negative_score(self):
        assert grade_percentage(-1, 100) is None

    def test_boundaries_are_valid(self):
        assert grade_percentage(0, 100) == 0.0
        assert grade_percentage(100, 100) == 100.0


class TestMetricsService:
    """Test MetricsService."""

    def test_no_classes(self, record_source):
        metrics, classes, _ = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        assert classes == []
        assert metrics.average_grade == 0
        assert metrics.completion_rate == 0
        assert metrics.total_students == 0
        assert metrics.active_courses == 0

    def test_classes_without_students(self, record_source):
        record_source.add_class("f1", "c1", sub_assessments=[(100, {})])
        record_source.add_class("f1", "c2")

        metrics, classes, _ = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        assert len(classes) == 2
        assert metrics.average_grade == 0
        assert metrics.completion_rate == 0
        assert metrics.total_students == 0
        assert metrics.at_risk_students == 0
        assert metrics.active_courses == 2

    def test_aggregates_across_classes(self, record_source):
        record_source.add_class(
            "f1",
            "c1",
            students=[("s1", "Ann", 90), ("s2", "Bob", 80)],
            sub_assessments=[(50, {"s1": 45, "s2": 30}), (100, {"s1": 80, "s2": None})],
        )
        record_source.add_class(
            "f1",
            "c2",
            students=[("s1", "Ann", 90)],
            sub_assessments=[(20, {"s1": 20})],
        )

        metrics, _, _ = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        # Valid percentages: 90, 60, 80, 100
        assert metrics.average_grade == 82.5
        # 4 graded rows out of 2*2 + 1*1 expected
        assert metrics.completion_rate == 80
        assert metrics.total_students == 3
        assert metrics.at_risk_students == 1
        assert metrics.active_courses == 2

    def test_out_of_range_score_excluded(self, record_source):
        record_source.add_class(
            "f1",
            "c1",
            students=[("s1", "Ann", 90), ("s2", "Bob", 90)],
            sub_assessments=[(100, {"s1": 80, "s2": 500})],
        )

        metrics, _, _ = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        assert metrics.average_grade == 80.0
        assert metrics.at_risk_students == 0
        # The corrupt row was still submitted
        assert metrics.completion_rate == 100

    def test_zero_total_points(self, record_source):
        record_source.add_class("f1", "c1", students=[("s1", "Ann", 90)], sub_assessments=[(0, {"s1": 5})])

        metrics, _, _ = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        assert metrics.average_grade == 0
        assert math.isfinite(metrics.average_grade)
        assert metrics.completion_rate == 100

    def test_unpublished_sub_assessments_ignored(self, record_source):
        record_source.add_class(
            "f1", "c1", students=[("s1", "Ann", 90)], sub_assessments=[(100, {"s1": 10})], published=False
        )

        metrics, _, _ = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        assert metrics.average_grade == 0
        assert metrics.completion_rate == 0
        assert metrics.at_risk_students == 0
        assert metrics.total_students == 1

    def test_failing_class_contributes_nothing(self, record_source):
        record_source.add_class("f1", "c1", students=[("s1", "Ann", 90)], sub_assessments=[(100, {"s1": 90})])
        record_source.add_class("f1", "c2", students=[("s2", "Bob", 90)], sub_assessments=[(100, {"s2": 10})])
        record_source.fail("grades_for_sub_assessment", "c2-s0")

        metrics, _, _ = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        assert metrics.average_grade == 90.0
        assert metrics.total_students == 1
        assert metrics.at_risk_students == 0
        assert metrics.active_courses == 2

    def test_failing_class_list_is_reported(self, record_source):
        record_source.fail("classes_for_faculty", "f1")

        with pytest.raises(SourceFetchError):
            MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

    def test_failing_class_list_lenient_lookup(self, record_source):
        record_source.fail("classes_for_faculty", "f1")

        assert MetricsService(record_source, max_workers=2).get_faculty_classes("f1") == []

    def test_completion_rate_clamped(self, record_source):
        context = record_source.add_class(
            "f1", "c1", students=[("s1", "Ann", 90)], sub_assessments=[(100, {"s1": 90})]
        )
        # Grade rows for students no longer on the roster
        record_source.grades["c1-s0"].extend(
            record_source.grades["c1-s0"][0].model_copy(update={"enrollment_id": f"old-{i}"}) for i in range(3)
        )

        metrics = MetricsService(record_source, max_workers=2).calculate_performance_metrics([context])

        assert metrics.completion_rate == 100

    def test_metrics_bounded(self, record_source):
        record_source.add_class(
            "f1",
            "c1",
            students=[("s1", "Ann", 90), ("s2", "Bob", 10)],
            sub_assessments=[(10, {"s1": 0, "s2": 10}), (10, {"s1": -3, "s2": 11})],
        )

        metrics, _, _ = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        for value in (metrics.average_grade, metrics.completion_rate):
            assert 0 <= value <= 100
            assert not math.isnan(value)

    def test_classes_passed_through(self, record_source):
        context = ClassContext(section_id="c9", syllabus_id="syl-c9")

        metrics = MetricsService(record_source, max_workers=2).calculate_performance_metrics([context])

        assert metrics.active_courses == 1
        assert metrics.total_students == 0


class TestCourseBreakdown:
    """Test per-class rows returned with the faculty metrics."""

    def test_one_row_per_class(self, record_source):
        record_source.add_class(
            "f1",
            "c1",
            students=[("s1", "Ann", 90), ("s2", "Bob", 80)],
            sub_assessments=[(50, {"s1": 45, "s2": 30}), (100, {"s1": 80, "s2": None})],
        )
        record_source.add_class("f1", "c2", students=[("s1", "Ann", 90)], sub_assessments=[(20, {"s1": 20})])

        _, _, courses = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        assert [course.section_id for course in courses] == ["c1", "c2"]
        first, second = courses
        assert first.course_code == "CS-c1"
        assert first.course_title == "Course c1"
        # 90, 60, 80
        assert first.average_grade == 76.67
        assert first.completion_rate == 75
        assert first.total_students == 2
        assert first.at_risk_students == 1
        assert second.average_grade == 100.0
        assert second.completion_rate == 100
        assert second.at_risk_students == 0

    def test_failing_class_marked_unavailable(self, record_source):
        record_source.add_class("f1", "c1", students=[("s1", "Ann", 90)], sub_assessments=[(100, {"s1": 90})])
        record_source.add_class("f1", "c2", students=[("s2", "Bob", 90)], sub_assessments=[(100, {"s2": 50})])
        record_source.fail("students_for_class", "c2")

        _, _, courses = MetricsService(record_source, max_workers=2).calculate_faculty_metrics("f1")

        assert courses[0].data_available is True
        assert courses[1].data_available is False
        assert courses[1].course_code == "CS-c2"
        assert courses[1].total_students == 0

    def test_attach_attendance(self, record_source):
        service = MetricsService(record_source, max_workers=2)
        record_source.add_class("f1", "c1", students=[("s1", "Ann", 90)])
        record_source.add_class("f1", "c2")
        _, _, courses = service.calculate_faculty_metrics("f1")
        features = [
            make_feature("s1", 90, 80).model_copy(update={"section_id": "c1"}),
            make_feature("s2", 75, 80).model_copy(update={"section_id": "c1"}),
            make_feature("s3", 10, 80),
        ]

        result = service.attach_attendance(courses, features)

        assert result[0].attendance_rate == 82.5
        assert result[1].attendance_rate == 0.0
