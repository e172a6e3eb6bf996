"""
This module contains the RandomCutTreeNode and RandomCutTree classes that
implement the random cut tree used by both the anomaly detector and the
sample summarizer.
"""

from __future__ import annotations

from typing import Any

import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt

from ..exceptions import InvalidArgumentError, InvalidModelStateError


def _random_cut(
    box_min: npt.NDArray[np.floating[Any]],
    box_max: npt.NDArray[np.floating[Any]],
    rng: np.random.Generator,
) -> tuple[int, float]:
    """
    Draw a cut over a bounding box. The feature is picked with probability
    proportional to its range and the threshold is uniform inside that range,
    both from a single draw over the summed ranges.
    Args:
        box_min: Lower corner of the box, shape (n_features,).
        box_max: Upper corner of the box, shape (n_features,).
        rng: Random generator owned by the tree.
    Returns:
        Tuple of (idx_feature, split_threshold) with
        box_min[idx_feature] < split_threshold <= box_max[idx_feature].
    """
    ranges = box_max - box_min
    cumulative = np.cumsum(ranges)
    total = float(cumulative[-1])
    if not total > 0.0:
        raise InvalidModelStateError(
            "no feature has a positive range, the points cannot be separated"
        )
    if not np.isfinite(total):
        raise InvalidModelStateError("feature ranges must be finite to draw a cut")

    while True:
        r = rng.uniform(0.0, total)
        idx_feature = int(np.searchsorted(cumulative, r, side="right"))
        idx_feature = min(idx_feature, len(ranges) - 1)
        offset = r - (cumulative[idx_feature] - ranges[idx_feature])
        split_threshold = float(box_min[idx_feature] + offset)
        if box_min[idx_feature] < split_threshold <= box_max[idx_feature]:
            return idx_feature, split_threshold


class RandomCutTreeNode:
    """
    Node in a Random Cut Tree.
    Internal nodes hold a cut; leaves hold a bag of distinct points with
    reference counts. Every node keeps the bounding box and the mass (number
    of points, duplicates included) of its subtree.
    Attributes:
        box_min: Per-feature minimum over the points of the subtree.
        box_max: Per-feature maximum over the points of the subtree.
        mass: Number of points in the subtree, counting duplicates.
        idx_feature: Feature used for the cut (None for leaves).
        split_threshold: Points with value < threshold go to children[0].
        children: [lower, upper] for internal nodes, empty for leaves.
        points: Distinct points of a leaf, shape (n_distinct, n_features).
        counts: Reference count of each distinct leaf point.
    """

    def __init__(
        self,
        box_min: npt.NDArray[np.floating[Any]],
        box_max: npt.NDArray[np.floating[Any]],
        mass: int,
    ) -> None:
        self.box_min = box_min
        self.box_max = box_max
        self.mass = mass

        self.idx_feature: int | None = None
        self.split_threshold: float | None = None

        self.children: list[RandomCutTreeNode] = []
        self.points: npt.NDArray[np.floating[Any]] | None = None
        self.counts: npt.NDArray[np.int64] | None = None

    @classmethod
    def from_points(
        cls,
        Xs: npt.NDArray[np.floating[Any]],
        counts: npt.NDArray[np.int64],
    ) -> RandomCutTreeNode:
        return cls(
            box_min=np.min(Xs, axis=0),
            box_max=np.max(Xs, axis=0),
            mass=int(np.sum(counts)),
        )

    @classmethod
    def leaf(
        cls,
        Xs: npt.NDArray[np.floating[Any]],
        counts: npt.NDArray[np.int64],
    ) -> RandomCutTreeNode:
        node = cls.from_points(Xs, counts)
        node.points = Xs
        node.counts = counts
        return node

    @property
    def is_leaf(self) -> bool:
        return self.points is not None

    def partition_space(
        self,
        Xs: npt.NDArray[np.floating[Any]],
        counts: npt.NDArray[np.int64],
        depth: int,
        MAX_DEPTH: int,
        rng: np.random.Generator,
    ) -> None:
        """
        Recursively partition the distinct points with random cuts.
        Args:
            Xs: Distinct points of this subtree, shape (n_distinct, n_features).
            counts: Multiplicity of each distinct point.
            depth: Depth of this node (root is 0).
            MAX_DEPTH: Nodes at this depth become leaves whatever they hold.
            rng: Random generator owned by the tree.
        """
        if depth >= MAX_DEPTH or Xs.shape[0] <= 1:
            self.points = Xs
            self.counts = counts
            return

        self.idx_feature, self.split_threshold = _random_cut(self.box_min, self.box_max, rng)

        mask_lower = Xs[:, self.idx_feature] < self.split_threshold

        child_lower = RandomCutTreeNode.from_points(Xs[mask_lower], counts[mask_lower])
        child_upper = RandomCutTreeNode.from_points(Xs[~mask_lower], counts[~mask_lower])

        self.children = [child_lower, child_upper]
        self.children[0].partition_space(Xs[mask_lower], counts[mask_lower], depth + 1, MAX_DEPTH, rng)
        self.children[1].partition_space(Xs[~mask_lower], counts[~mask_lower], depth + 1, MAX_DEPTH, rng)

    def find(self, x: npt.NDArray[np.floating[Any]]) -> int | None:
        """Index of ``x`` in the leaf bag, or None if it is not there."""
        assert self.points is not None
        matches = np.flatnonzero(np.all(self.points == x, axis=1))
        return int(matches[0]) if matches.size else None

    def contains_batch(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.bool_]:
        assert self.points is not None
        return np.any(np.all(Xs[:, None, :] == self.points[None, :, :], axis=2), axis=1)

    def refresh(self) -> None:
        """Recompute box and mass from the children or the leaf bag."""
        if self.is_leaf:
            assert self.counts is not None
            self.box_min = np.min(self.points, axis=0)
            self.box_max = np.max(self.points, axis=0)
            self.mass = int(np.sum(self.counts))
            return
        lower, upper = self.children
        self.box_min = np.minimum(lower.box_min, upper.box_min)
        self.box_max = np.maximum(lower.box_max, upper.box_max)
        self.mass = lower.mass + upper.mass

    def get_displacements_batch(
        self,
        Xs: npt.NDArray[np.floating[Any]],
        reach: npt.NDArray[np.floating[Any]],
        sibling_mass: int = 0,
    ) -> npt.NDArray[np.floating[Any]]:
        """
        Expected number of points displaced by inserting each sample into
        this subtree. At every node a sample is cut off with the probability
        that a random cut on the box merged with the sample separates it, in
        which case the whole subtree becomes its sibling. Otherwise it follows
        the existing cut. A duplicate of a stored point displaces nothing; a
        point stored once is scored as if removed and re-inserted, displacing
        its sibling subtree.
        Args:
            Xs: Data samples of shape (n_samples, n_features).
            reach: Probability that each sample was not cut off above this node.
            sibling_mass: Mass of this node's sibling, 0 for the root.
        Returns:
            Expected displaced mass for each sample of shape (n_samples,).
        """
        merged_min = np.minimum(self.box_min, Xs)
        merged_max = np.maximum(self.box_max, Xs)
        merged_range = np.sum(merged_max - merged_min, axis=1)
        box_range = float(np.sum(self.box_max - self.box_min))

        separation = np.zeros(Xs.shape[0], dtype=np.float64)
        outside = merged_range > box_range
        separation[outside] = (merged_range[outside] - box_range) / merged_range[outside]

        if self.is_leaf:
            assert self.points is not None
            # not cut off here: the sample lands among the bag's distinct points
            kept = self.mass / self.points.shape[0]
            displaced = reach * (separation * self.mass + (1.0 - separation) * kept)
            seen = self.contains_batch(Xs)
            if self.points.shape[0] == 1 and self.counts[0] == 1:
                displaced[seen] = reach[seen] * sibling_mass
            else:
                displaced[seen] = 0.0
            return displaced

        assert self.idx_feature is not None
        assert self.split_threshold is not None

        displaced = reach * separation * self.mass
        reach_children = reach * (1.0 - separation)

        mask_lower = Xs[:, self.idx_feature] < self.split_threshold

        if np.any(mask_lower):
            displaced[mask_lower] += self.children[0].get_displacements_batch(
                Xs[mask_lower], reach_children[mask_lower], self.children[1].mass
            )

        if np.any(~mask_lower):
            displaced[~mask_lower] += self.children[1].get_displacements_batch(
                Xs[~mask_lower], reach_children[~mask_lower], self.children[0].mass
            )

        return displaced

    def route(self, x: npt.NDArray[np.floating[Any]]) -> RandomCutTreeNode:
        """Leaf reached by following the cuts from this node."""
        node = self
        while not node.is_leaf:
            node = node.children[0 if x[node.idx_feature] < node.split_threshold else 1]
        return node

    def get_depths_batch(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.int_]:
        """
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Depth of the leaf each sample is routed to, shape (n_samples,).
        """
        depths = np.zeros(Xs.shape[0], dtype=np.int_)
        if self.is_leaf:
            return depths

        mask_lower = Xs[:, self.idx_feature] < self.split_threshold

        if np.any(mask_lower):
            depths[mask_lower] = 1 + self.children[0].get_depths_batch(Xs[mask_lower])

        if np.any(~mask_lower):
            depths[~mask_lower] = 1 + self.children[1].get_depths_batch(Xs[~mask_lower])

        return depths

    def max_depth(self) -> int:
        if self.is_leaf:
            return 0
        return 1 + max(child.max_depth() for child in self.children)

    def to_state(self) -> dict[str, Any]:
        if self.is_leaf:
            return {"points": self.points.copy(), "counts": self.counts.copy()}
        return {
            "feature": self.idx_feature,
            "threshold": self.split_threshold,
            "lower": self.children[0].to_state(),
            "upper": self.children[1].to_state(),
        }

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> RandomCutTreeNode:
        if "points" in state:
            points = np.array(state["points"], dtype=np.float64)
            counts = np.array(state["counts"], dtype=np.int64)
            return cls.leaf(points, counts)

        node = cls(box_min=np.empty(0), box_max=np.empty(0), mass=0)
        node.idx_feature = int(state["feature"])
        node.split_threshold = float(state["threshold"])
        node.children = [cls.from_state(state["lower"]), cls.from_state(state["upper"])]
        node.refresh()
        return node

    def plot_partition_space_2D(self) -> None:
        """
        Plots a line for each cut, bounded by the node's box, and scatters
        leaf points sized by their reference count.
        Only works for 2-dimensional data.
        """
        if self.is_leaf:
            plt.scatter(self.points[:, 0], self.points[:, 1], c="lightgray", s=5 * self.counts)
            return

        if self.idx_feature == 0:
            plt.plot([self.split_threshold, self.split_threshold],
                     [self.box_min[1], self.box_max[1]], c="gray")
        else:
            plt.plot([self.box_min[0], self.box_max[0]],
                     [self.split_threshold, self.split_threshold], c="gray")

        for child in self.children:
            child.plot_partition_space_2D()


class RandomCutTree:
    """
    Single Random Cut Tree over a bounded sample of points.
    Attributes:
        sample_size: Maximum number of points (duplicates included) the tree holds.
        max_depth: Depth at which fitting stops cutting. None means the tree
            is cut until every leaf holds a single distinct point.
        rng: Random generator used for sampling and cuts.
        root: Root node of the tree, None while the tree is empty.
    """

    def __init__(
        self,
        sample_size: int = 256,
        max_depth: int | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        if sample_size <= 0:
            raise InvalidArgumentError("sample size should be positive")
        if max_depth is not None and max_depth <= 0:
            raise InvalidArgumentError("max depth should be positive")

        self.sample_size = sample_size
        self.max_depth = max_depth
        self.rng = rng if rng is not None else np.random.default_rng()

        self.root: RandomCutTreeNode | None = None

    @property
    def depth_limit(self) -> int:
        # a cut always separates at least one distinct point, so depth never
        # exceeds the sample size
        return self.max_depth if self.max_depth is not None else self.sample_size

    @property
    def mass(self) -> int:
        return 0 if self.root is None else self.root.mass

    def fit(self, Xs: npt.NDArray[np.floating[Any]]) -> RandomCutTree:
        """
        Sample up to ``sample_size`` points without replacement, collapse
        duplicates and partition the sample with random cuts.
        Args:
            Xs: Training data of shape (n_samples, n_features).
        Returns:
            The fitted tree.
        """
        if Xs.shape[0] == 0:
            raise InvalidArgumentError("cannot build a tree from an empty batch")

        if self.sample_size < Xs.shape[0]:
            subsample_indices = self.rng.choice(Xs.shape[0], self.sample_size, replace=False)
            Xs_train = Xs[subsample_indices]
        else:
            Xs_train = Xs

        distinct, counts = np.unique(Xs_train, axis=0, return_counts=True)
        counts = counts.astype(np.int64)

        self.root = RandomCutTreeNode.from_points(distinct, counts)
        self.root.partition_space(distinct, counts, 0, self.depth_limit, self.rng)
        return self

    def insert(self, x: npt.ArrayLike) -> None:
        """
        Insert one point. A cut drawn on the box merged with the point either
        separates it, creating a new parent above the current node, or the
        point follows the existing cut downwards. Duplicates only raise the
        reference count of their leaf.
        Args:
            x: Point of shape (n_features,).
        """
        x = np.asarray(x, dtype=np.float64)
        if self.mass >= self.sample_size:
            raise InvalidModelStateError(
                f"tree already holds {self.mass} points, delete one before inserting"
            )
        if self.root is None:
            self.root = RandomCutTreeNode.leaf(x.reshape(1, -1), np.ones(1, dtype=np.int64))
            return
        if x.shape != self.root.box_min.shape:
            raise InvalidArgumentError(
                f"point has {x.size} features, tree expects {self.root.box_min.size}"
            )
        self.root = self._insert(self.root, x, 0)

    def _insert(self, node: RandomCutTreeNode, x: npt.NDArray[np.floating[Any]], depth: int) -> RandomCutTreeNode:
        if node.is_leaf:
            idx = node.find(x)
            if idx is not None:
                node.counts[idx] += 1
                node.mass += 1
                return node

        if depth < self.depth_limit:
            merged_min = np.minimum(node.box_min, x)
            merged_max = np.maximum(node.box_max, x)
            idx_feature, split_threshold = _random_cut(merged_min, merged_max, self.rng)

            value = x[idx_feature]
            cut_below = value < split_threshold <= node.box_min[idx_feature]
            cut_above = node.box_max[idx_feature] < split_threshold <= value
            if cut_below or cut_above:
                leaf = RandomCutTreeNode.leaf(x.reshape(1, -1), np.ones(1, dtype=np.int64))
                parent = RandomCutTreeNode(merged_min, merged_max, node.mass + 1)
                parent.idx_feature = idx_feature
                parent.split_threshold = split_threshold
                parent.children = [leaf, node] if cut_below else [node, leaf]
                return parent

        if node.is_leaf:
            node.points = np.vstack([node.points, x])
            node.counts = np.append(node.counts, 1)
            node.refresh()
            return node

        child = 0 if x[node.idx_feature] < node.split_threshold else 1
        node.children[child] = self._insert(node.children[child], x, depth + 1)
        node.refresh()
        return node

    def delete(self, x: npt.ArrayLike) -> None:
        """
        Remove one reference to a point. An emptied leaf is dropped and its
        sibling takes the parent's place; boxes along the path shrink.
        Args:
            x: Point of shape (n_features,).
        """
        x = np.asarray(x, dtype=np.float64)
        if self.root is None:
            raise InvalidArgumentError("cannot delete from an empty tree")
        self.root = self._delete(self.root, x)

    def _delete(self, node: RandomCutTreeNode, x: npt.NDArray[np.floating[Any]]) -> RandomCutTreeNode | None:
        if node.is_leaf:
            idx = node.find(x)
            if idx is None:
                raise InvalidArgumentError(f"point {x.tolist()} is not stored in the tree")
            node.counts[idx] -= 1
            if node.counts[idx] == 0:
                keep = np.arange(node.points.shape[0]) != idx
                if not np.any(keep):
                    return None
                node.points = node.points[keep]
                node.counts = node.counts[keep]
            node.refresh()
            return node

        child = 0 if x[node.idx_feature] < node.split_threshold else 1
        remaining = self._delete(node.children[child], x)
        if remaining is None:
            return node.children[1 - child]
        node.children[child] = remaining
        node.refresh()
        return node

    def contains(self, x: npt.ArrayLike) -> bool:
        """Whether the point is stored in the leaf its cuts lead to."""
        if self.root is None:
            return False
        x = np.asarray(x, dtype=np.float64)
        return self.root.route(x).find(x) is not None

    def displacements(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        """
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Expected displaced mass for each sample of shape (n_samples,).
        """
        if self.root is None:
            raise InvalidModelStateError("tree has not been fitted")
        return self.root.get_displacements_batch(Xs, np.ones(Xs.shape[0], dtype=np.float64))

    def scores(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        """
        Anomaly scores are in [0, 1] where higher scores indicate anomalies:
        the expected displacement divided by the tree mass.
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Anomaly scores for each sample of shape (n_samples,).
        """
        return self.displacements(Xs) / self.mass

    def depths(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.int_]:
        if self.root is None:
            raise InvalidModelStateError("tree has not been fitted")
        return self.root.get_depths_batch(Xs)

    def leaf_points(self) -> tuple[npt.NDArray[np.floating[Any]], npt.NDArray[np.int64]]:
        """
        Returns:
            Tuple of (distinct points, reference counts) over all leaves.
        """
        if self.root is None:
            return np.empty((0, 0)), np.empty(0, dtype=np.int64)

        points, counts = [], []
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                points.append(node.points)
                counts.append(node.counts)
            else:
                stack.extend(node.children)
        return np.vstack(points), np.concatenate(counts)

    def to_state(self) -> dict[str, Any]:
        return {
            "sample_size": self.sample_size,
            "max_depth": self.max_depth,
            "root": None if self.root is None else self.root.to_state(),
        }

    @classmethod
    def from_state(cls, state: dict[str, Any], rng: np.random.Generator | None = None) -> RandomCutTree:
        tree = cls(sample_size=int(state["sample_size"]), max_depth=state["max_depth"], rng=rng)
        if state["root"] is not None:
            tree.root = RandomCutTreeNode.from_state(state["root"])
        return tree

    def plot_partition_space_2D(self) -> None:
        """
        Visualize the 2D space partitioning created by this tree.
        Only works for 2D data.
        """
        assert self.root is not None

        box_min, box_max = self.root.box_min, self.root.box_max

        plt.title("Space Partition Random Cut Tree")
        plt.xlabel("X")
        plt.ylabel("Y")

        plt.plot([box_min[0], box_max[0]], [box_min[1], box_min[1]], c="gray")
        plt.plot([box_min[0], box_max[0]], [box_max[1], box_max[1]], c="gray")
        plt.plot([box_min[0], box_min[0]], [box_min[1], box_max[1]], c="gray")
        plt.plot([box_max[0], box_max[0]], [box_min[1], box_max[1]], c="gray")

        self.root.plot_partition_space_2D()
        plt.show()
