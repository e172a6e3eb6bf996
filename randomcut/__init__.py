"""Random cut forest anomaly detection and sample summarization.

This package provides two engines built on the same random cut tree substrate:
- rcf: random cut trees and forests, and the BatchRandomCutForest detector
- summarize: RCFSummarize, reducing a point set to a few weighted representatives
"""

from . import rcf
from . import summarize
from .artifact import ArtifactKind, ModelArtifact, ModelRecord, deserialize, serialize
from .exceptions import (
    CorruptArtifactError,
    InvalidArgumentError,
    InvalidModelStateError,
    RandomCutError,
)
from .params import BatchRCFParams, DistanceType, RCFSummarizeParams, TrainingDataPolicy
from .rcf import BatchRandomCutForest, RandomCutForest
from .summarize import RCFSummarize, SampleSummary

__all__ = [
    "rcf",
    "summarize",
    "ArtifactKind",
    "ModelArtifact",
    "ModelRecord",
    "serialize",
    "deserialize",
    "RandomCutError",
    "InvalidArgumentError",
    "InvalidModelStateError",
    "CorruptArtifactError",
    "BatchRCFParams",
    "RCFSummarizeParams",
    "DistanceType",
    "TrainingDataPolicy",
    "RandomCutForest",
    "BatchRandomCutForest",
    "RCFSummarize",
    "SampleSummary",
]
