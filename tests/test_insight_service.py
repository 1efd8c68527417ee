"""
Tests for insight and recommendation generation.
"""
from conftest import make_feature

from app.models.analytics import InsightKind, PerformanceMetrics, RecommendationPriority
from app.services.cluster_service import NEAREST_CENTROID, ClusterService
from app.services.insight_service import InsightService
from app.services.recommendation_service import RecommendationService

HEALTHY = PerformanceMetrics(
    average_grade=88.0, completion_rate=95, total_students=10, at_risk_students=0, active_courses=1
)


def _clusters(*features):
    return ClusterService(NEAREST_CENTROID).cluster_students(list(features))


class TestInsightService:
    """Test InsightService."""

    def test_no_data(self):
        insights = InsightService().generate_insights([], PerformanceMetrics())

        kinds = [i.kind for i in insights]
        assert InsightKind.CRITICAL not in kinds
        assert InsightKind.WARNING not in kinds
        assert InsightKind.POSITIVE not in kinds
        # Zeroed metrics are below every target; no students means no on-track rate
        assert kinds == [InsightKind.PERFORMANCE, InsightKind.ENGAGEMENT]

    def test_rule_order(self):
        clusters = _clusters(
            make_feature("hp", 95, 90),
            make_feature("ar", 70, 65),
            make_feature("st", 40, 35),
        )
        metrics = PerformanceMetrics(
            average_grade=60.0, completion_rate=50, total_students=10, at_risk_students=5, active_courses=1
        )

        insights = InsightService().generate_insights(clusters, metrics)

        assert [i.kind for i in insights] == [
            InsightKind.CRITICAL,
            InsightKind.WARNING,
            InsightKind.POSITIVE,
            InsightKind.PERFORMANCE,
            InsightKind.ENGAGEMENT,
            InsightKind.ATTENDANCE,
        ]

    def test_cluster_insight_details(self):
        insights = InsightService().generate_insights(_clusters(make_feature("st", 40, 35)), HEALTHY)

        (critical,) = insights
        assert critical.kind == InsightKind.CRITICAL
        assert critical.details["student_count"] == 1
        assert critical.details["students"] == ["Student st"]

    def test_performance_details(self):
        metrics = HEALTHY.model_copy(update={"average_grade": 79.99, "at_risk_students": 1})

        (insight,) = InsightService().generate_insights([], metrics)

        assert insight.kind == InsightKind.PERFORMANCE
        assert insight.details["average_grade"] == 79.99
        assert insight.details["at_risk_students"] == 1
        assert insight.details["target"] == 80.0

    def test_targets_are_exclusive(self):
        metrics = PerformanceMetrics(
            average_grade=80.0, completion_rate=70, total_students=20, at_risk_students=3, active_courses=1
        )

        # 17/20 = 85% on track
        assert InsightService().generate_insights([], metrics) == []

    def test_on_track_below_target(self):
        metrics = HEALTHY.model_copy(update={"at_risk_students": 2})

        (insight,) = InsightService().generate_insights([], metrics)

        assert insight.kind == InsightKind.ATTENDANCE
        assert insight.details["on_track_rate"] == 80.0


class TestRecommendationService:
    """Test RecommendationService."""

    def test_at_risk_cluster_gets_high_priority(self):
        clusters = _clusters(make_feature("ar", 70, 65))
        insights = InsightService().generate_insights(clusters, HEALTHY)

        recommendations = RecommendationService().generate_recommendations(clusters, insights)

        assert len(recommendations) == 1
        assert recommendations[0].priority == RecommendationPriority.HIGH
        assert recommendations[0].kind == "intervention"
        assert recommendations[0].title == "At-Risk Students Identified"

    def test_struggling_alone_has_no_high_priority(self):
        clusters = _clusters(make_feature("st", 40, 35))
        metrics = PerformanceMetrics(
            average_grade=35.0, completion_rate=100, total_students=1, at_risk_students=1, active_courses=1
        )
        insights = InsightService().generate_insights(clusters, metrics)

        recommendations = RecommendationService().generate_recommendations(clusters, insights)

        assert recommendations
        assert all(r.priority != RecommendationPriority.HIGH for r in recommendations)
        assert {r.kind for r in recommendations} == {"academic"}

    def test_overlapping_rules_are_not_deduplicated(self):
        clusters = _clusters(make_feature("ar", 70, 65))
        metrics = PerformanceMetrics(
            average_grade=65.0, completion_rate=50, total_students=1, at_risk_students=1, active_courses=1
        )
        insights = InsightService().generate_insights(clusters, metrics)

        recommendations = RecommendationService().generate_recommendations(clusters, insights)

        assert [(r.kind, r.priority) for r in recommendations] == [
            ("intervention", RecommendationPriority.HIGH),
            ("academic", RecommendationPriority.MEDIUM),
            ("academic", RecommendationPriority.MEDIUM),
            ("engagement", RecommendationPriority.MEDIUM),
        ]

    def test_no_findings_no_recommendations(self):
        clusters = _clusters(make_feature("hp", 95, 90))
        insights = InsightService().generate_insights(clusters, HEALTHY)

        assert RecommendationService().generate_recommendations(clusters, insights) == []
