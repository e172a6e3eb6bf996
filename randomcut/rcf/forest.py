"""
This module contains the RandomCutForest class that implements an ensemble
of random cut trees, each built from its own independent sample.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt
from joblib import Parallel, delayed

from ..exceptions import InvalidArgumentError, InvalidModelStateError
from ..logger import get_logger
from .tree import RandomCutTree

logger = get_logger(__name__)


def _fit_single_tree(
    seed: int,
    Xs: npt.NDArray[np.floating[Any]],
    sample_size: int,
    max_depth: int | None,
) -> RandomCutTree:
    """
    Worker function to fit a random cut tree with a given seed.
    This function is designed to be called in parallel using joblib.
    Each worker receives an integer seed and builds its own generator, so
    no random state is shared between trees.

    Args:
        seed: Random seed for this tree (integer).
        Xs: Training data of shape (n_samples, n_features).
        sample_size: Number of samples to use for building the tree.
        max_depth: Depth limit of the tree.
    Returns:
        Fitted RandomCutTree instance.
    """
    tree = RandomCutTree(
        sample_size=sample_size,
        max_depth=max_depth,
        rng=np.random.default_rng(seed),
    )
    return tree.fit(Xs)


def _score_single_tree(
    tree: RandomCutTree,
    Xs: npt.NDArray[np.floating[Any]],
) -> npt.NDArray[np.floating[Any]]:
    """
    Worker function to score samples on a single tree.
    Args:
        tree: Fitted RandomCutTree instance.
        Xs: Data samples of shape (n_samples, n_features).
    Returns:
        Anomaly scores for each sample of shape (n_samples,).
    """
    return tree.scores(Xs)


class RandomCutForest:
    """
    Ensemble of Random Cut Trees.

    Each tree samples its own points without coordinating with the others,
    and scores are the arithmetic mean of the per-tree scores.

    Attributes:
        number_of_trees: Number of trees in the ensemble.
        sample_size: Maximum number of points sampled by each tree.
        max_depth: Depth limit passed to every tree.
        n_jobs: Number of parallel jobs to run. -1 means using all processors.
        random_state: Random seed for reproducibility.
        n_features: Dimensionality of the training points.
        trees: List of fitted RandomCutTree instances.
    """
    def __init__(
        self,
        number_of_trees: int = 30,
        sample_size: int = 256,
        max_depth: int | None = None,
        n_jobs: int = 1,
        random_state: int | None = None,
    ) -> None:
        """
        Initialize a RandomCutForest.
        Args:
            number_of_trees: Number of random cut trees in the ensemble.
            sample_size: Points sampled without replacement by each tree. It is
                capped to the number of training points.
            max_depth: Depth limit of every tree. None cuts until leaves hold
                a single distinct point.
            n_jobs: Number of parallel jobs to run for tree building.
                - If 1 (default): sequential execution (no parallelization)
                - If -1: use all available processors
                - If > 1: use specified number of processors
            random_state: Random seed for reproducibility. The same seed gives
                identical trees whatever the value of n_jobs.
        """
        if number_of_trees <= 0:
            raise InvalidArgumentError("number of trees should be positive")
        if sample_size <= 0:
            raise InvalidArgumentError("sample size should be positive")

        self.number_of_trees = number_of_trees
        self.sample_size = sample_size
        self.max_depth = max_depth
        self.n_jobs = n_jobs
        self.random_state = random_state

        self.n_features: int | None = None
        self.trees: list[RandomCutTree] = []

    def build(self, Xs: npt.NDArray[np.floating[Any]]) -> RandomCutForest:
        """
        Builds every tree from its own random sample of the data.
        Args:
            Xs: Training data of shape (n_samples, n_features).
        Returns:
            The fitted forest.
        """
        if Xs.ndim != 2 or Xs.shape[0] == 0:
            raise InvalidArgumentError("cannot build a forest from an empty batch")

        sample_size = min(self.sample_size, Xs.shape[0])
        if sample_size < self.sample_size:
            logger.info(
                "Sample size %d capped to the %d available points", self.sample_size, sample_size
            )

        rng = np.random.default_rng(self.random_state)
        MAX_INT = np.iinfo(np.int32).max
        seeds = rng.integers(MAX_INT, size=self.number_of_trees)

        if self.n_jobs == 1:
            self.trees = [
                _fit_single_tree(int(seed), Xs, sample_size, self.max_depth) for seed in seeds
            ]
        else:
            trees_list = Parallel(n_jobs=self.n_jobs, backend="loky")(
                delayed(_fit_single_tree)(int(seed), Xs, sample_size, self.max_depth) for seed in seeds
            )
            self.trees = list(trees_list)  # type: ignore[arg-type]

        self.n_features = Xs.shape[1]
        logger.info(
            "Built %d trees over %d points (sample size %d, %d features)",
            len(self.trees), Xs.shape[0], sample_size, self.n_features,
        )
        return self

    fit = build

    def _check_fitted(self, Xs: npt.NDArray[np.floating[Any]]) -> None:
        if not self.trees:
            raise InvalidModelStateError("forest has not been built")
        if Xs.ndim != 2 or Xs.shape[1] != self.n_features:
            raise InvalidArgumentError(
                f"expected points with {self.n_features} features, got shape {Xs.shape}"
            )

    def score(
        self, Xs: npt.NDArray[np.floating[Any]],
    ) -> npt.NDArray[np.floating[Any]]:
        """
        Anomaly scores are in [0, 1] where higher scores indicate anomalies.
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Anomaly scores for each sample of shape (n_samples,).
        """
        self._check_fitted(Xs)
        if Xs.shape[0] == 0:
            return np.zeros(0, dtype=np.float64)

        if self.n_jobs == 1:
            score_matrix = np.zeros((Xs.shape[0], len(self.trees)))
            for tree_idx, tree in enumerate(self.trees):
                score_matrix[:, tree_idx] = tree.scores(Xs)
        else:
            score_results = Parallel(n_jobs=self.n_jobs, backend="loky")(
                delayed(_score_single_tree)(tree, Xs) for tree in self.trees
            )
            score_matrix = np.column_stack(list(score_results))

        return np.mean(score_matrix, axis=1)

    def score_point(self, x: npt.ArrayLike) -> float:
        """Score a single point of shape (n_features,)."""
        return float(self.score(np.asarray(x, dtype=np.float64).reshape(1, -1))[0])

    def depths(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        """Mean leaf depth of each sample across the trees."""
        self._check_fitted(Xs)
        return np.mean(np.column_stack([tree.depths(Xs) for tree in self.trees]), axis=1)

    def sampled_points(self) -> tuple[npt.NDArray[np.floating[Any]], npt.NDArray[np.int64]]:
        """
        Distinct points held by the trees, with reference counts summed
        across the whole forest.
        Returns:
            Tuple of (points of shape (n_distinct, n_features), counts).
        """
        if not self.trees:
            raise InvalidModelStateError("forest has not been built")

        per_tree = [tree.leaf_points() for tree in self.trees]
        points = np.vstack([points for points, _ in per_tree])
        counts = np.concatenate([counts for _, counts in per_tree])

        distinct, inverse = np.unique(points, axis=0, return_inverse=True)
        totals = np.bincount(inverse.reshape(-1), weights=counts, minlength=distinct.shape[0])
        return distinct, totals.astype(np.int64)

    def to_state(self) -> dict[str, Any]:
        return {
            "number_of_trees": self.number_of_trees,
            "sample_size": self.sample_size,
            "max_depth": self.max_depth,
            "n_features": self.n_features,
            "trees": [tree.to_state() for tree in self.trees],
        }

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> RandomCutForest:
        forest = cls(
            number_of_trees=int(state["number_of_trees"]),
            sample_size=int(state["sample_size"]),
            max_depth=state["max_depth"],
        )
        forest.n_features = state["n_features"]
        forest.trees = [RandomCutTree.from_state(tree_state) for tree_state in state["trees"]]
        return forest
