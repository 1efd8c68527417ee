"""
Fixed behavioral centroids and vector helpers shared by clustering strategies.
"""
from typing import List, Sequence

import numpy as np

from app.models.analytics import CentroidThresholds, Cluster, ClusterLabel, StudentFeature, StudentSummary

# (label, attendance, grade) in normalized [0, 1] space. Order breaks ties.
FIXED_CENTROIDS = [
    (ClusterLabel.HIGH_PERFORMERS, 0.90, 0.85),
    (ClusterLabel.CONSISTENT, 0.80, 0.75),
    (ClusterLabel.AT_RISK, 0.70, 0.65),
    (ClusterLabel.STRUGGLING, 0.50, 0.50),
]

LABELS: List[ClusterLabel] = [label for label, _, _ in FIXED_CENTROIDS]


def centroid_matrix() -> np.ndarray:
    """Fixed centroids as a (4, 2) array of (attendance, grade)."""
    return np.array([[attendance, grade] for _, attendance, grade in FIXED_CENTROIDS], dtype=float)


def feature_matrix(features: Sequence[StudentFeature]) -> np.ndarray:
    """Normalized (n, 2) array of (attendance_rate/100, average_grade/100)."""
    if not features:
        return np.empty((0, 2), dtype=float)
    return np.array([[f.attendance_rate / 100, f.average_grade / 100] for f in features], dtype=float)


def nearest_centroid(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """
    Index of the nearest centroid for each point (Euclidean).

    np.argmin returns the first minimum, so ties go to the earlier centroid.
    """
    if points.shape[0] == 0:
        return np.empty(0, dtype=int)
    distances = np.linalg.norm(points[:, np.newaxis, :] - centroids[np.newaxis, :, :], axis=2)
    return np.argmin(distances, axis=1)


def build_clusters(
    features: Sequence[StudentFeature], assignments: np.ndarray, centroids: np.ndarray
) -> List[Cluster]:
    """Group features by centroid index; empty clusters are dropped."""
    clusters = []
    for index, label in enumerate(LABELS):
        members = [StudentSummary.from_feature(f) for f, a in zip(features, assignments) if int(a) == index]
        if not members:
            continue
        clusters.append(
            Cluster(
                label=label,
                student_count=len(members),
                students=members,
                centroid_thresholds=CentroidThresholds(
                    attendance=round(float(centroids[index][0]), 4),
                    grade=round(float(centroids[index][1]), 4),
                ),
            )
        )
    return clusters
