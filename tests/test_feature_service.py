"""
Tests for student feature building.
"""
from app.models.analytics import ComputationStage
from app.services.concurrency import ProgressReporter
from app.services.feature_service import FeatureService


def test_one_feature_per_student_and_class(record_source):
    c1 = record_source.add_class(
        "f1",
        "c1",
        students=[("s1", "Ann", 92.5), ("s2", "Bob", 60)],
        sub_assessments=[(50, {"s1": 45, "s2": 20}), (100, {"s1": 70})],
    )
    c2 = record_source.add_class("f1", "c2", students=[("s1", "Ann", 80)], sub_assessments=[(10, {"s1": 10})])

    features = FeatureService(record_source, max_workers=3).build_features([c1, c2])

    assert [(f.student_id, f.enrollment_id) for f in features] == [
        ("s1", "c1-s1"),
        ("s2", "c1-s2"),
        ("s1", "c2-s1"),
    ]
    ann, bob, ann_c2 = features
    assert ann.average_grade == 80.0
    assert ann.completed_assessments == 2
    assert ann.attendance_rate == 92.5
    assert ann.total_sessions == 20
    assert bob.average_grade == 40.0
    assert bob.completed_assessments == 1
    assert ann_c2.average_grade == 100.0
    assert [f.section_id for f in features] == ["c1", "c1", "c2"]


def test_student_without_grades(record_source):
    context = record_source.add_class("f1", "c1", students=[("s1", "Ann", 75)], sub_assessments=[(100, {})])

    (feature,) = FeatureService(record_source, max_workers=2).build_features([context])

    assert feature.average_grade == 0.0
    assert feature.completed_assessments == 0


def test_invalid_grades_are_excluded(record_source):
    context = record_source.add_class(
        "f1", "c1", students=[("s1", "Ann", 75)], sub_assessments=[(100, {"s1": 150}), (0, {"s1": 3}), (10, {"s1": 5})]
    )

    (feature,) = FeatureService(record_source, max_workers=2).build_features([context])

    assert feature.average_grade == 50.0
    assert feature.completed_assessments == 1


def test_attendance_failure_defaults_to_zero(record_source):
    context = record_source.add_class("f1", "c1", students=[("s1", "Ann", 75)], sub_assessments=[(10, {"s1": 9})])
    record_source.fail("attendance_summary_for_enrollment", "c1-s1")

    (feature,) = FeatureService(record_source, max_workers=2).build_features([context])

    assert feature.attendance_rate == 0.0
    assert feature.total_sessions == 0
    assert feature.average_grade == 90.0


def test_failing_student_list_skips_class(record_source):
    c1 = record_source.add_class("f1", "c1", students=[("s1", "Ann", 75)])
    c2 = record_source.add_class("f1", "c2", students=[("s2", "Bob", 75)])
    record_source.fail("students_for_class", "c1")

    features = FeatureService(record_source, max_workers=2).build_features([c1, c2])

    assert [f.student_id for f in features] == ["s2"]


def test_failing_grades_count_as_no_grades(record_source):
    context = record_source.add_class(
        "f1", "c1", students=[("s1", "Ann", 75)], sub_assessments=[(10, {"s1": 5}), (10, {"s1": 10})]
    )
    record_source.fail("grades_for_sub_assessment", "c1-s0")

    (feature,) = FeatureService(record_source, max_workers=2).build_features([context])

    assert feature.average_grade == 100.0
    assert feature.completed_assessments == 1


def test_progress_is_monotonic_and_bounded(record_source):
    students = [(f"s{i}", f"Student {i}", 80) for i in range(10)]
    context = record_source.add_class("f1", "c1", students=students, sub_assessments=[(10, {"s0": 8})])
    reported = []
    reporter = ProgressReporter(lambda stage, percent: reported.append((stage, percent)))

    FeatureService(record_source, max_workers=4).build_features([context], progress=reporter)

    percents = [percent for _, percent in reported]
    assert all(stage == ComputationStage.FEATURES for stage, _ in reported)
    assert percents == sorted(percents)
    assert 25 <= percents[0]
    assert percents[-1] == 60


def test_progress_reported_without_students(record_source):
    reported = []
    reporter = ProgressReporter(lambda stage, percent: reported.append(percent))

    features = FeatureService(record_source, max_workers=2).build_features([], progress=reporter)

    assert features == []
    assert reported == [60]
