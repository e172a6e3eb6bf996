"""Random Cut Forest implementation for anomaly detection.

This package provides random cut trees built with bounding-box weighted cuts,
the forest ensembling them, and the batch anomaly detector on top.
"""

from .batch import BatchRandomCutForest, DetectorState
from .forest import RandomCutForest
from .tree import RandomCutTree, RandomCutTreeNode

__all__ = [
    "RandomCutTree",
    "RandomCutTreeNode",
    "RandomCutForest",
    "BatchRandomCutForest",
    "DetectorState",
]
