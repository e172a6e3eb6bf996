"""
Parameter objects for the batch anomaly detector and the sample summarizer.

Both are frozen dataclasses validated on construction, so an invalid setting
fails before any data is touched. ``from_dict`` maps a missing configuration
(None) or missing keys onto the documented defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping

from .exceptions import InvalidArgumentError

DEFAULT_NUMBER_OF_TREES = 30
DEFAULT_SAMPLE_SIZE = 256
DEFAULT_OUTPUT_AFTER = 32
DEFAULT_ANOMALY_SCORE_THRESHOLD = 0.1

DEFAULT_MAX_K = 1
DEFAULT_INITIAL_K = 10
DEFAULT_SUMMARIZE_TREES = 5


class DistanceType(str, Enum):
    """Distance metric used by the summarizer, mapped to sklearn metric names."""

    L1 = "L1"
    L2 = "L2"
    LInfinity = "LInfinity"

    @property
    def metric(self) -> str:
        return _SKLEARN_METRICS[self]


_SKLEARN_METRICS = {
    DistanceType.L1: "manhattan",
    DistanceType.L2: "euclidean",
    DistanceType.LInfinity: "chebyshev",
}


class TrainingDataPolicy(str, Enum):
    """
    What BatchRandomCutForest.train does when ``training_data_size`` disagrees
    with the number of rows it receives.
    TRUNCATE: train on the first ``training_data_size`` rows (all rows if the
        batch is shorter).
    STRICT: raise InvalidArgumentError on any mismatch.
    """

    TRUNCATE = "truncate"
    STRICT = "strict"


def _check_positive(value: Any, message: str) -> None:
    if value is None or value <= 0:
        raise InvalidArgumentError(message)


def _check_not_negative(value: Any, message: str) -> None:
    if value is not None and value < 0:
        raise InvalidArgumentError(message)


def _check_tree_settings(number_of_trees: int, sample_size: int, max_depth: int | None) -> None:
    _check_positive(number_of_trees, "number of trees should be positive")
    _check_positive(sample_size, "sample size should be positive")
    if max_depth is not None:
        _check_positive(max_depth, "max depth should be positive")


def _from_mapping(cls, values: Mapping[str, Any] | None):
    if values is None:
        return cls()
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise InvalidArgumentError(f"unknown parameters for {cls.__name__}: {', '.join(unknown)}")
    # None entries fall back to the default rather than overriding it
    return cls(**{key: value for key, value in values.items() if value is not None})


@dataclass(frozen=True)
class BatchRCFParams:
    """
    Settings for BatchRandomCutForest.
    Attributes:
        number_of_trees: Trees in the forest.
        sample_size: Maximum points sampled by each tree.
        output_after: Warm-up count; rows with a lower index score 0 and are
            never reported as anomalies.
        training_data_size: Rows used for training. None or 0 uses every row;
            see TrainingDataPolicy for mismatches.
        anomaly_score_threshold: Rows scoring strictly above it are anomalous.
        training_data_policy: TRUNCATE or STRICT.
        max_depth: Depth cap for each tree. None leaves depth bounded only by
            the number of distinct sampled points.
        n_jobs: joblib workers used to build trees (1 = sequential, -1 = all).
        random_state: Seed for the forest. None draws fresh entropy.
    """

    number_of_trees: int = DEFAULT_NUMBER_OF_TREES
    sample_size: int = DEFAULT_SAMPLE_SIZE
    output_after: int = DEFAULT_OUTPUT_AFTER
    training_data_size: int | None = None
    anomaly_score_threshold: float = DEFAULT_ANOMALY_SCORE_THRESHOLD
    training_data_policy: TrainingDataPolicy = TrainingDataPolicy.TRUNCATE
    max_depth: int | None = None
    n_jobs: int = 1
    random_state: int | None = None

    def __post_init__(self) -> None:
        _check_tree_settings(self.number_of_trees, self.sample_size, self.max_depth)
        _check_not_negative(self.training_data_size, "training data size should not be negative")
        _check_not_negative(self.output_after, "output after should not be negative")
        _check_not_negative(self.anomaly_score_threshold, "anomaly score threshold should not be negative")
        if self.output_after is None:
            raise InvalidArgumentError("output after should not be negative")
        if self.anomaly_score_threshold is None:
            raise InvalidArgumentError("anomaly score threshold should not be negative")
        # accept the plain string form coming from a parsed config file
        try:
            policy = TrainingDataPolicy(self.training_data_policy)
        except ValueError as e:
            raise InvalidArgumentError(f"unknown training data policy: {self.training_data_policy!r}") from e
        object.__setattr__(self, "training_data_policy", policy)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any] | None = None) -> BatchRCFParams:
        return _from_mapping(cls, values)


@dataclass(frozen=True)
class RCFSummarizeParams:
    """
    Settings for RCFSummarize.
    Attributes:
        max_k: Upper bound on the number of clusters in the final summary.
        initial_k: Number of forest-sampled seeds the reduction starts from.
        distance_type: L1, L2 or LInfinity; used for seeding, reassignment and
            merge selection alike.
        phase1_reassign: Reassign every point to its nearest centroid after
            each merge.
        parallel: Spread nearest-centroid searches over joblib threads.
        number_of_trees: Trees in the seeding forest.
        sample_size: Points sampled by each seeding tree.
        random_state: Seed for the forest and the seed draw.
    """

    max_k: int = DEFAULT_MAX_K
    initial_k: int = DEFAULT_INITIAL_K
    distance_type: DistanceType = DistanceType.L2
    phase1_reassign: bool = True
    parallel: bool = False
    number_of_trees: int = DEFAULT_SUMMARIZE_TREES
    sample_size: int = DEFAULT_SAMPLE_SIZE
    random_state: int | None = None

    def __post_init__(self) -> None:
        _check_positive(self.max_k, "max K should be positive")
        _check_positive(self.initial_k, "initial K should be positive")
        _check_tree_settings(self.number_of_trees, self.sample_size, None)
        try:
            distance_type = DistanceType(self.distance_type)
        except ValueError as e:
            raise InvalidArgumentError(f"unknown distance type: {self.distance_type!r}") from e
        object.__setattr__(self, "distance_type", distance_type)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any] | None = None) -> RCFSummarizeParams:
        return _from_mapping(cls, values)
