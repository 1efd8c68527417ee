"""
ML-based clustering service: Lloyd's K-means seeded with the fixed centroids.
"""
import logging
import time
from typing import Any, Dict, List, Sequence

import numpy as np
from sklearn.cluster import KMeans
from sklearn.metrics import silhouette_score

from app.models.analytics import Cluster, StudentFeature
from app.services.centroids import build_clusters, centroid_matrix, feature_matrix, nearest_centroid

logger = logging.getLogger("app.ml_cluster")


class MLClusterService:
    """
    Clusters students with K-means using scikit-learn.

    Centroids start at the fixed behavioral centroids and are re-estimated
    from data. Cluster ``i`` keeps the label of fixed centroid ``i``, so the
    label space stays the same as nearest-centroid classification.
    """

    def __init__(self, max_iter: int = 300, tol: float = 1e-4):
        self.logger = logger
        self.algorithm = "KMeans"
        self.params = {
            "max_iter": max_iter,
            "tol": tol,
            "n_init": 1,
        }
        self.last_quality_metrics: Dict[str, Any] = {}

    def cluster_students(self, features: Sequence[StudentFeature]) -> List[Cluster]:
        """
        Cluster features with K-means.

        Falls back to nearest-fixed-centroid when there are fewer samples
        than centroids or when fewer distinct points than centroids exist.

        Args:
            features: Student feature vectors

        Returns:
            Non-empty clusters in label order
        """
        points = feature_matrix(features)
        initial = centroid_matrix()

        distinct_points = len(np.unique(points, axis=0)) if len(points) else 0
        if distinct_points < len(initial):
            self.logger.info(
                f"K-means needs {len(initial)} distinct samples, got {distinct_points}; using fixed centroids"
            )
            return build_clusters(features, nearest_centroid(points, initial), initial)

        start_time = time.time()
        model = KMeans(n_clusters=len(initial), init=initial, **self.params)
        assignments = model.fit_predict(points)
        processing_time = time.time() - start_time

        self.last_quality_metrics = self._quality_metrics(points, assignments, model, processing_time)
        self.logger.info(f"K-means clustering completed for {len(features)} students: {self.last_quality_metrics}")

        return build_clusters(features, assignments, model.cluster_centers_)

    def _quality_metrics(
        self, points: np.ndarray, assignments: np.ndarray, model: KMeans, processing_time: float
    ) -> Dict[str, Any]:
        metrics: Dict[str, Any] = {
            "algorithm": self.algorithm,
            "n_iter": int(model.n_iter_),
            "inertia": float(model.inertia_),
            "processing_time": round(processing_time, 4),
        }
        n_labels = len(set(assignments.tolist()))
        if 1 < n_labels < len(points):
            metrics["silhouette_score"] = float(silhouette_score(points, assignments))
        return metrics
