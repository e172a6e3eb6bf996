"""
Distance helpers for the summarizer, backed by sklearn's pairwise metrics.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt
from joblib import Parallel, delayed
from sklearn.metrics import pairwise_distances, pairwise_distances_argmin

from ..params import DistanceType

CHUNK_SIZE = 1024


def centroid_distances(
    centroids: npt.NDArray[np.floating[Any]],
    distance_type: DistanceType,
) -> npt.NDArray[np.floating[Any]]:
    """
    Args:
        centroids: Cluster centroids of shape (n_clusters, n_features).
        distance_type: Metric to use.
    Returns:
        Symmetric distance matrix of shape (n_clusters, n_clusters).
    """
    return pairwise_distances(centroids, metric=distance_type.metric)


def _nearest_chunk(
    Xs: npt.NDArray[np.floating[Any]],
    centroids: npt.NDArray[np.floating[Any]],
    metric: str,
) -> npt.NDArray[np.int_]:
    return pairwise_distances_argmin(Xs, centroids, metric=metric)


def nearest_centroids(
    Xs: npt.NDArray[np.floating[Any]],
    centroids: npt.NDArray[np.floating[Any]],
    distance_type: DistanceType,
    parallel: bool = False,
    chunk_size: int = CHUNK_SIZE,
) -> npt.NDArray[np.int_]:
    """
    Index of the nearest centroid for every sample. Ties go to the lowest index.
    With ``parallel`` the samples are split into chunks searched by joblib
    threads; every worker only reads the centroid array.
    Args:
        Xs: Data samples of shape (n_samples, n_features).
        centroids: Cluster centroids of shape (n_clusters, n_features).
        distance_type: Metric to use.
        parallel: Spread the search over all available threads.
        chunk_size: Samples handed to one worker at a time.
    Returns:
        Centroid indices of shape (n_samples,).
    """
    if Xs.shape[0] == 0:
        return np.zeros(0, dtype=np.int_)

    metric = distance_type.metric
    if not parallel or Xs.shape[0] <= chunk_size:
        return _nearest_chunk(Xs, centroids, metric)

    snapshot = centroids.copy()
    snapshot.setflags(write=False)
    chunks = [Xs[start:start + chunk_size] for start in range(0, Xs.shape[0], chunk_size)]
    results = Parallel(n_jobs=-1, backend="threading")(
        delayed(_nearest_chunk)(chunk, snapshot, metric) for chunk in chunks
    )
    return np.concatenate(list(results))
