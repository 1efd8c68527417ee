"""
Recommendation service mapping clusters and insights to action items.
"""
import logging
from typing import List, Sequence

from app.models.analytics import (
    Cluster,
    ClusterLabel,
    Insight,
    InsightKind,
    Recommendation,
    RecommendationPriority,
)
from app.services.insight_service import AVERAGE_GRADE_TARGET, COMPLETION_RATE_TARGET

logger = logging.getLogger("app.recommendations")


class RecommendationService:
    """
    Generates prioritized recommendations.

    Rules are additive: the at-risk cluster rule and the performance insight
    rules can describe the same students twice.
    """

    def __init__(self):
        self.logger = logger

    def generate_recommendations(self, clusters: Sequence[Cluster], insights: Sequence[Insight]) -> List[Recommendation]:
        recommendations: List[Recommendation] = []

        at_risk = next((c for c in clusters if c.label == ClusterLabel.AT_RISK), None)
        if at_risk and at_risk.student_count > 0:
            recommendations.append(
                Recommendation(
                    kind="intervention",
                    priority=RecommendationPriority.HIGH,
                    title="At-Risk Students Identified",
                    description=f"{at_risk.student_count} students need immediate attention",
                    action="Schedule individual counseling sessions",
                )
            )

        for insight in insights:
            recommendations.extend(self._from_insight(insight))

        self.logger.info(f"Generated {len(recommendations)} recommendations")
        return recommendations

    def _from_insight(self, insight: Insight) -> List[Recommendation]:
        recommendations = []
        details = insight.details or {}

        if insight.kind == InsightKind.PERFORMANCE:
            at_risk_students = details.get("at_risk_students") or 0
            if at_risk_students > 0:
                recommendations.append(
                    Recommendation(
                        kind="academic",
                        priority=RecommendationPriority.MEDIUM,
                        title="Academic Performance Alert",
                        description=f"{at_risk_students} graded submissions scored below 75%",
                        action="Review assessment strategies and provide additional support",
                    )
                )

            average_grade = details.get("average_grade")
            if average_grade is not None and average_grade < AVERAGE_GRADE_TARGET:
                recommendations.append(
                    Recommendation(
                        kind="academic",
                        priority=RecommendationPriority.MEDIUM,
                        title="Improve Class Average",
                        description=f"Class average of {average_grade:.2f}% is below the {AVERAGE_GRADE_TARGET:.0f}% target",
                        action="Revisit instructional methods and schedule review sessions before assessments",
                    )
                )

        elif insight.kind == InsightKind.ENGAGEMENT:
            completion_rate = details.get("completion_rate")
            if completion_rate is not None and completion_rate < COMPLETION_RATE_TARGET:
                recommendations.append(
                    Recommendation(
                        kind="engagement",
                        priority=RecommendationPriority.MEDIUM,
                        title="Follow Up on Missing Work",
                        description=f"Only {completion_rate:.0f}% of expected assessments have been graded",
                        action="Follow up with students who have missing submissions",
                    )
                )

        return recommendations
