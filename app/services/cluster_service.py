"""
Cluster service for assigning students to behavioral segments.
"""
import logging
from typing import Dict, List, Optional, Sequence

from app.models.analytics import Cluster, ClusterLabel, StudentFeature
from app.services.centroids import build_clusters, centroid_matrix, feature_matrix, nearest_centroid
from app.services.config_service import config_service
from app.services.ml_cluster_service import MLClusterService

logger = logging.getLogger("app.cluster")

NEAREST_CENTROID = "nearest_centroid"
KMEANS = "kmeans"
STRATEGIES = (NEAREST_CENTROID, KMEANS)


class ClusterService:
    """Service for clustering students by attendance and grade."""

    def __init__(self, strategy: Optional[str] = None):
        strategy = (strategy or config_service.get_setting("ANALYTICS_CLUSTER_STRATEGY") or NEAREST_CENTROID).lower()
        if strategy not in STRATEGIES:
            logger.warning(f"Unknown clustering strategy {strategy!r}, using {NEAREST_CENTROID}")
            strategy = NEAREST_CENTROID
        self.strategy = strategy
        self.ml_cluster_service = MLClusterService()
        self.logger = logger

    def cluster_students(self, features: Sequence[StudentFeature]) -> List[Cluster]:
        """
        Assign every feature to exactly one cluster.

        Args:
            features: Student feature vectors

        Returns:
            Non-empty clusters in label order
        """
        self.logger.info(f"Clustering {len(features)} students using {self.strategy}")

        if self.strategy == KMEANS:
            clusters = self.ml_cluster_service.cluster_students(features)
        else:
            clusters = self.nearest_centroid_clusters(features)

        self.logger.info(f"Clustering completed: {self._summarize_clusters(clusters)}")
        return clusters

    def nearest_centroid_clusters(self, features: Sequence[StudentFeature]) -> List[Cluster]:
        """Single deterministic pass against the fixed centroids."""
        centroids = centroid_matrix()
        assignments = nearest_centroid(feature_matrix(features), centroids)
        return build_clusters(features, assignments, centroids)

    def _summarize_clusters(self, clusters: List[Cluster]) -> Dict[str, int]:
        summary = {label.value: 0 for label in ClusterLabel}
        for cluster in clusters:
            summary[cluster.label.value] = cluster.student_count
        return summary
