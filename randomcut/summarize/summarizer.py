"""
This module contains the RCFSummarize engine. It seeds ``initial_k``
clusters from points sampled by a random cut forest and merges the closest
clusters until at most ``max_k`` remain.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt

from ..artifact import ArtifactKind, ModelArtifact, resolve_model
from ..exceptions import InvalidArgumentError
from ..frame import ColumnMeta, ColumnType, PredictionFrame, as_points
from ..logger import get_logger
from ..params import RCFSummarizeParams
from ..rcf.forest import RandomCutForest
from .distance import centroid_distances, nearest_centroids
from .summary import SampleSummary

logger = get_logger(__name__)

NO_MODEL_MESSAGE = "No model found for RCFSummarize prediction."

OUTPUT_COLUMNS = (ColumnMeta("ClusterID", ColumnType.INTEGER),)


def aggregate_clusters(
    Xs: npt.NDArray[np.floating[Any]],
    labels: npt.NDArray[np.int_],
    n_clusters: int,
) -> tuple[npt.NDArray[np.floating[Any]], npt.NDArray[np.int_], npt.NDArray[np.int_]]:
    """
    Recompute centroids and weights from an assignment, dropping clusters
    left without points and relabelling the survivors contiguously.
    Args:
        Xs: Data samples of shape (n_samples, n_features).
        labels: Cluster index of every sample, in [0, n_clusters).
        n_clusters: Number of clusters the labels refer to.
    Returns:
        Tuple of (centroids, weights, labels) for the non-empty clusters.
    """
    weights = np.bincount(labels, minlength=n_clusters)
    sums = np.zeros((n_clusters, Xs.shape[1]), dtype=np.float64)
    np.add.at(sums, labels, Xs)

    keep = weights > 0
    new_index = np.cumsum(keep) - 1
    centroids = sums[keep] / weights[keep][:, None]
    return centroids, weights[keep], new_index[labels]


def merge_closest(
    centroids: npt.NDArray[np.floating[Any]],
    weights: npt.NDArray[np.int_],
    labels: npt.NDArray[np.int_],
    distances: npt.NDArray[np.floating[Any]],
) -> tuple[npt.NDArray[np.floating[Any]], npt.NDArray[np.int_], npt.NDArray[np.int_]]:
    """
    Merge the two clusters with the smallest centroid distance. The merged
    centroid is the weighted mean of the two, which is the mean of all their
    points.
    Args:
        centroids: Cluster centroids of shape (n_clusters, n_features).
        weights: Points per cluster.
        labels: Cluster index of every sample.
        distances: Centroid distance matrix of shape (n_clusters, n_clusters).
    Returns:
        Tuple of (centroids, weights, labels) with one cluster fewer.
    """
    distances = distances.copy()
    np.fill_diagonal(distances, np.inf)
    first, second = np.unravel_index(np.argmin(distances), distances.shape)
    keep_idx, drop_idx = int(min(first, second)), int(max(first, second))

    total = weights[keep_idx] + weights[drop_idx]
    merged = (
        weights[keep_idx] * centroids[keep_idx] + weights[drop_idx] * centroids[drop_idx]
    ) / total

    centroids = np.delete(centroids, drop_idx, axis=0)
    centroids[keep_idx] = merged
    weights = np.delete(weights, drop_idx)
    weights[keep_idx] = total

    labels = labels.copy()
    labels[labels == drop_idx] = keep_idx
    labels[labels > drop_idx] -= 1
    return centroids, weights, labels


class RCFSummarize:
    """
    Summarizes a point set into at most ``max_k`` weighted representatives.

    Attributes:
        parameters: Validated RCFSummarizeParams; defaults when built with None.
    """

    def __init__(self, parameters: RCFSummarizeParams | None = None) -> None:
        self.parameters = parameters if parameters is not None else RCFSummarizeParams()

    def _draw_seeds(
        self,
        Xs: npt.NDArray[np.floating[Any]],
        rng: np.random.Generator,
    ) -> npt.NDArray[np.floating[Any]]:
        forest = RandomCutForest(
            number_of_trees=self.parameters.number_of_trees,
            sample_size=self.parameters.sample_size,
            random_state=int(rng.integers(np.iinfo(np.int32).max)),
        ).build(Xs)

        candidates, counts = forest.sampled_points()
        n_seeds = min(self.parameters.initial_k, candidates.shape[0])
        if n_seeds < self.parameters.initial_k:
            logger.warning(
                "Initial K %d capped to the %d distinct sampled points",
                self.parameters.initial_k, n_seeds,
            )

        chosen = rng.choice(candidates.shape[0], n_seeds, replace=False, p=counts / counts.sum())
        return candidates[np.sort(chosen)]

    def summarize(self, Xs: npt.NDArray[np.floating[Any]]) -> SampleSummary:
        """
        Run seeding, initial assignment and the reduction loop.
        Args:
            Xs: Training points of shape (n_samples, n_features).
        Returns:
            SampleSummary with at most ``max_k`` summary points whose weights
            add up to n_samples.
        """
        params = self.parameters
        rng = np.random.default_rng(params.random_state)

        seeds = self._draw_seeds(Xs, rng)
        labels = nearest_centroids(Xs, seeds, params.distance_type, parallel=params.parallel)
        centroids, weights, labels = aggregate_clusters(Xs, labels, seeds.shape[0])
        logger.info("Seeded %d clusters over %d points", centroids.shape[0], Xs.shape[0])

        while centroids.shape[0] > params.max_k:
            distances = centroid_distances(centroids, params.distance_type)
            centroids, weights, labels = merge_closest(centroids, weights, labels, distances)

            if params.phase1_reassign:
                # centroids are not modified until every point has been assigned
                labels = nearest_centroids(Xs, centroids, params.distance_type, parallel=params.parallel)
                centroids, weights, labels = aggregate_clusters(Xs, labels, centroids.shape[0])

            logger.debug("Reduced to %d clusters", centroids.shape[0])

        logger.info("Summarized %d points into %d clusters", Xs.shape[0], centroids.shape[0])
        return SampleSummary.from_clusters(Xs, labels, centroids, params.distance_type)

    def train(self, rows: Any) -> ModelArtifact:
        """
        Args:
            rows: Training rows, anything accepted by ``as_points``.
        Returns:
            RCF_SUMMARIZE ModelArtifact wrapping the SampleSummary.
        """
        Xs = as_points(rows)
        if Xs.shape[0] == 0:
            raise InvalidArgumentError("no rows to summarize")
        return ModelArtifact.for_summary(self.summarize(Xs))

    def predict(self, rows: Any, model: ModelArtifact | Any) -> PredictionFrame:
        """
        Label every row with its nearest summary point, measured with the
        distance type the model was built with.
        Args:
            rows: Rows to label, anything accepted by ``as_points``.
            model: RCF_SUMMARIZE ModelArtifact or its ModelRecord.
        Returns:
            PredictionFrame with one ``ClusterID`` column.
        """
        artifact = resolve_model(model, ArtifactKind.RCF_SUMMARIZE)
        if artifact is None:
            raise InvalidArgumentError(NO_MODEL_MESSAGE)

        Xs = as_points(rows)
        summary: SampleSummary = artifact.payload
        if summary.distance_type != self.parameters.distance_type:
            logger.warning(
                "Model was built with %s distance, labelling with it instead of %s",
                summary.distance_type.value, self.parameters.distance_type.value,
            )
        if Xs.shape[0] and Xs.shape[1] != summary.centroids.shape[1]:
            raise InvalidArgumentError(
                f"expected points with {summary.centroids.shape[1]} features, got {Xs.shape[1]}"
            )

        labels = summary.assign(Xs, parallel=self.parameters.parallel)
        return PredictionFrame.from_columns(OUTPUT_COLUMNS, labels)

    def train_and_predict(self, rows: Any) -> PredictionFrame:
        """Summarize the rows and label the very same rows."""
        return self.predict(rows, self.train(rows))
