"""
Insight service deriving labeled findings from clusters and metrics.
"""
import logging
from typing import List, Optional, Sequence

from app.models.analytics import Cluster, ClusterLabel, Insight, InsightKind, PerformanceMetrics

logger = logging.getLogger("app.insights")

# Fixed targets
AVERAGE_GRADE_TARGET = 80.0
COMPLETION_RATE_TARGET = 70.0
ON_TRACK_TARGET = 85.0


def _find_cluster(clusters: Sequence[Cluster], label: ClusterLabel) -> Optional[Cluster]:
    cluster = next((c for c in clusters if c.label == label), None)
    if cluster is None or cluster.student_count <= 0:
        return None
    return cluster


def _student_names(cluster: Cluster) -> List[str]:
    return [s.full_name or s.student_id for s in cluster.students]


class InsightService:
    """Applies the insight rules in a fixed order."""

    def __init__(self):
        self.logger = logger

    def generate_insights(self, clusters: Sequence[Cluster], metrics: PerformanceMetrics) -> List[Insight]:
        """
        Generate insights.

        Each rule yields at most one insight; order is
        critical, warning, positive, performance, engagement, attendance.
        """
        insights: List[Insight] = []

        struggling = _find_cluster(clusters, ClusterLabel.STRUGGLING)
        if struggling:
            insights.append(
                Insight(
                    kind=InsightKind.CRITICAL,
                    title="Students Struggling",
                    description=f"{struggling.student_count} students show low attendance and low grades",
                    details={"student_count": struggling.student_count, "students": _student_names(struggling)},
                )
            )

        at_risk = _find_cluster(clusters, ClusterLabel.AT_RISK)
        if at_risk:
            insights.append(
                Insight(
                    kind=InsightKind.WARNING,
                    title="At-Risk Students Identified",
                    description=f"{at_risk.student_count} students are trending below expectations",
                    details={"student_count": at_risk.student_count, "students": _student_names(at_risk)},
                )
            )

        high_performers = _find_cluster(clusters, ClusterLabel.HIGH_PERFORMERS)
        if high_performers:
            insights.append(
                Insight(
                    kind=InsightKind.POSITIVE,
                    title="High Performers",
                    description=f"{high_performers.student_count} students combine strong attendance and grades",
                    details={
                        "student_count": high_performers.student_count,
                        "students": _student_names(high_performers),
                    },
                )
            )

        if metrics.average_grade < AVERAGE_GRADE_TARGET:
            insights.append(
                Insight(
                    kind=InsightKind.PERFORMANCE,
                    title="Class Average Below Target",
                    description=(
                        f"Class average grade is {metrics.average_grade:.2f}%, "
                        f"below the {AVERAGE_GRADE_TARGET:.0f}% target"
                    ),
                    details={
                        "average_grade": metrics.average_grade,
                        "target": AVERAGE_GRADE_TARGET,
                        "at_risk_students": metrics.at_risk_students,
                    },
                )
            )

        if metrics.completion_rate < COMPLETION_RATE_TARGET:
            insights.append(
                Insight(
                    kind=InsightKind.ENGAGEMENT,
                    title="Low Assessment Completion",
                    description=(
                        f"Completion rate is {metrics.completion_rate:.0f}%, "
                        f"below the {COMPLETION_RATE_TARGET:.0f}% target"
                    ),
                    details={"completion_rate": metrics.completion_rate, "target": COMPLETION_RATE_TARGET},
                )
            )

        if metrics.total_students > 0:
            on_track_rate = (metrics.total_students - metrics.at_risk_students) / metrics.total_students * 100
            if on_track_rate < ON_TRACK_TARGET:
                insights.append(
                    Insight(
                        kind=InsightKind.ATTENDANCE,
                        title="Students On Track Below Target",
                        description=(
                            f"{on_track_rate:.1f}% of students are on track, "
                            f"below the {ON_TRACK_TARGET:.0f}% target"
                        ),
                        details={
                            "on_track_rate": round(on_track_rate, 2),
                            "target": ON_TRACK_TARGET,
                            "total_students": metrics.total_students,
                            "at_risk_students": metrics.at_risk_students,
                        },
                    )
                )

        self.logger.info(f"Generated {len(insights)} insights: {[i.kind.value for i in insights]}")
        return insights
