from __future__ import annotations

import numpy as np
from sklearn.cluster import DBSCAN

from t2.utils import get_logger

logger = get_logger(__name__)

NOISE = -1


class ClusteringError(RuntimeError):
    """Clustering could not run on this gulp's features."""


def cluster(points: np.ndarray, *, min_pts: int = 5, eps: float = 14.0) -> np.ndarray:
    """DBSCAN labels for each row of ``points``; ``NOISE`` (-1) for noise.

    Neighbourhoods are inclusive (distance <= eps) and count the point itself
    toward ``min_pts``. Rows with non-finite values are labelled noise and
    left out of the neighbourhood search.
    """
    points = np.asarray(points, dtype=float)
    if points.ndim != 2:
        raise ClusteringError(f"expected a 2-D feature matrix, got shape {points.shape}")
    if points.shape[0] == 0:
        return np.zeros((0,), dtype=int)

    finite = np.isfinite(points).all(axis=1)
    labels = np.full(points.shape[0], NOISE, dtype=int)
    n_bad = int((~finite).sum())
    if n_bad:
        logger.warning("cluster.dbscan: %d row(s) with non-finite features labelled noise", n_bad)

    if finite.any():
        try:
            labels[finite] = DBSCAN(eps=eps, min_samples=min_pts, metric="euclidean").fit_predict(points[finite])
        except (ValueError, MemoryError) as e:
            raise ClusteringError(f"dbscan failed: {e}") from e

    n_clusters = len({int(x) for x in labels.tolist() if x != NOISE})
    n_noise = int((labels == NOISE).sum())
    logger.info(
        "cluster.dbscan: points=%d clusters=%d noise=%d (min_pts=%d eps=%.2f)",
        points.shape[0],
        n_clusters,
        n_noise,
        min_pts,
        eps,
    )
    return labels
