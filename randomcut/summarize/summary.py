"""
This module contains the SummaryPoint and SampleSummary classes holding the
result of a summarization: a few weighted representative points standing in
for the whole training batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt

from ..params import DistanceType
from .distance import nearest_centroids


@dataclass(frozen=True)
class SummaryPoint:
    """
    Representative point of one cluster.
    Attributes:
        point: Centroid of the cluster, shape (n_features,).
        weight: Number of training points the cluster stands for.
        label: Cluster label, contiguous from 0.
    """

    point: npt.NDArray[np.floating[Any]]
    weight: int
    label: int


class SampleSummary:
    """
    Weighted summary of a point set.
    Attributes:
        summary_points: Representatives ordered by label.
        distance_type: Metric the summary was built with; prediction uses it too.
        mean: Weighted mean of the summarized points, shape (n_features,).
        deviation: Per-feature standard deviation of the summarized points.
        weight_of_samples: Total weight, equal to the number of training points.
    """

    def __init__(
        self,
        summary_points: list[SummaryPoint],
        distance_type: DistanceType,
        mean: npt.NDArray[np.floating[Any]],
        deviation: npt.NDArray[np.floating[Any]],
    ) -> None:
        self.summary_points = summary_points
        self.distance_type = DistanceType(distance_type)
        self.mean = mean
        self.deviation = deviation

    @classmethod
    def from_clusters(
        cls,
        Xs: npt.NDArray[np.floating[Any]],
        labels: npt.NDArray[np.int_],
        centroids: npt.NDArray[np.floating[Any]],
        distance_type: DistanceType,
    ) -> SampleSummary:
        """
        Build a summary from final assignments, relabelling clusters 0..k-1
        in centroid order.
        Args:
            Xs: Training points of shape (n_samples, n_features).
            labels: Cluster index of every training point.
            centroids: Centroids indexed by those cluster indices.
            distance_type: Metric used to build the clusters.
        """
        weights = np.bincount(labels, minlength=centroids.shape[0])
        summary_points = [
            SummaryPoint(point=centroids[idx].copy(), weight=int(weights[idx]), label=label)
            for label, idx in enumerate(np.flatnonzero(weights))
        ]
        return cls(
            summary_points=summary_points,
            distance_type=distance_type,
            mean=np.mean(Xs, axis=0),
            deviation=np.std(Xs, axis=0),
        )

    @property
    def centroids(self) -> npt.NDArray[np.floating[Any]]:
        return np.vstack([summary_point.point for summary_point in self.summary_points])

    @property
    def weights(self) -> npt.NDArray[np.int_]:
        return np.array([summary_point.weight for summary_point in self.summary_points], dtype=np.int_)

    @property
    def weight_of_samples(self) -> int:
        return int(np.sum(self.weights))

    @property
    def relative_weight(self) -> npt.NDArray[np.floating[Any]]:
        return self.weights / self.weight_of_samples

    def __len__(self) -> int:
        return len(self.summary_points)

    def assign(
        self,
        Xs: npt.NDArray[np.floating[Any]],
        parallel: bool = False,
    ) -> npt.NDArray[np.int_]:
        """
        Args:
            Xs: Data samples of shape (n_samples, n_features).
            parallel: Spread the nearest-centroid search over threads.
        Returns:
            Label of the nearest summary point for each sample.
        """
        idx = nearest_centroids(Xs, self.centroids, self.distance_type, parallel=parallel)
        labels = np.array([summary_point.label for summary_point in self.summary_points])
        return labels[idx]

    def to_state(self) -> dict[str, Any]:
        return {
            "distance_type": self.distance_type.value,
            "centroids": self.centroids,
            "weights": self.weights,
            "labels": np.array([summary_point.label for summary_point in self.summary_points]),
            "mean": self.mean,
            "deviation": self.deviation,
        }

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> SampleSummary:
        centroids = np.array(state["centroids"], dtype=np.float64)
        weights = np.array(state["weights"], dtype=np.int64)
        labels = np.array(state["labels"], dtype=np.int64)
        if centroids.ndim != 2 or centroids.shape[0] == 0:
            raise ValueError(f"summary needs a non-empty 2-D centroid array, got shape {centroids.shape}")
        if weights.shape != (centroids.shape[0],) or labels.shape != (centroids.shape[0],):
            raise ValueError(
                f"{centroids.shape[0]} centroids with {weights.size} weights and {labels.size} labels"
            )
        if not np.array_equal(labels, np.arange(centroids.shape[0])):
            raise ValueError("summary labels must run from 0 without gaps")

        summary_points = [
            SummaryPoint(point=point.copy(), weight=int(weight), label=int(label))
            for point, weight, label in zip(centroids, weights, labels)
        ]
        return cls(
            summary_points=summary_points,
            distance_type=DistanceType(state["distance_type"]),
            mean=np.array(state["mean"], dtype=np.float64),
            deviation=np.array(state["deviation"], dtype=np.float64),
        )

    def plot_summary_2D(self, Xs: npt.NDArray[np.floating[Any]] | None = None) -> None:
        """
        Scatter the summary points, sized by weight, over the optional
        original points. Only works for 2-dimensional data.
        """
        plt.title("Sample Summary")
        plt.xlabel("X")
        plt.ylabel("Y")

        if Xs is not None:
            plt.scatter(Xs[:, 0], Xs[:, 1], c="lightgray", s=5)

        centroids = self.centroids
        sizes = 20 + 200 * self.relative_weight
        plt.scatter(centroids[:, 0], centroids[:, 1], c="red", s=sizes)
        for summary_point in self.summary_points:
            plt.annotate(str(summary_point.label), (summary_point.point[0], summary_point.point[1]))
        plt.show()
