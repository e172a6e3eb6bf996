"""
Trained model artifacts and their byte serialization.

A ModelArtifact wraps either a RandomCutForest (anomaly detection) or a
SampleSummary (summarization), tagged with its kind. Serialized artifacts are
a joblib-compressed envelope holding the kind, algorithm name, version and a
plain state dictionary of the payload.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

import joblib

from .exceptions import CorruptArtifactError, InvalidArgumentError

if TYPE_CHECKING:
    from .rcf.forest import RandomCutForest
    from .summarize.summary import SampleSummary

ARTIFACT_FORMAT = "randomcut-model"
MODEL_VERSION = "1.0.0"


class ArtifactKind(str, Enum):
    BATCH_RCF = "BATCH_RCF"
    RCF_SUMMARIZE = "RCF_SUMMARIZE"


def _payload_type(kind: ArtifactKind) -> type:
    # imported here, the engines import this module
    if kind == ArtifactKind.BATCH_RCF:
        from .rcf.forest import RandomCutForest
        return RandomCutForest
    from .summarize.summary import SampleSummary
    return SampleSummary


Payload = Union["RandomCutForest", "SampleSummary"]


@dataclass(frozen=True)
class ModelArtifact:
    """
    Immutable trained state produced by ``train`` and consumed by ``predict``.
    Attributes:
        kind: BATCH_RCF for a forest, RCF_SUMMARIZE for a summary.
        payload: The RandomCutForest or SampleSummary itself.
        name: Algorithm name, defaults to the kind's value.
        version: Artifact schema version.
    """

    kind: ArtifactKind
    payload: Payload
    name: str = ""
    version: str = MODEL_VERSION

    def __post_init__(self) -> None:
        kind = ArtifactKind(self.kind)
        if not isinstance(self.payload, _payload_type(kind)):
            raise InvalidArgumentError(
                f"{kind.value} artifact cannot hold a {type(self.payload).__name__}"
            )
        object.__setattr__(self, "kind", kind)
        if not self.name:
            object.__setattr__(self, "name", kind.value)

    @classmethod
    def for_forest(cls, forest: RandomCutForest) -> ModelArtifact:
        return cls(kind=ArtifactKind.BATCH_RCF, payload=forest)

    @classmethod
    def for_summary(cls, summary: SampleSummary) -> ModelArtifact:
        return cls(kind=ArtifactKind.RCF_SUMMARIZE, payload=summary)

    def serialize(self) -> bytes:
        return serialize(self)

    @classmethod
    def deserialize(cls, data: bytes) -> ModelArtifact:
        return deserialize(data)

    def to_record(self) -> ModelRecord:
        return ModelRecord(name=self.name, version=self.version, content=serialize(self))


@dataclass(frozen=True)
class ModelRecord:
    """Named, versioned model as handed to storage or transport."""

    name: str
    version: str
    content: bytes = field(repr=False)

    def to_artifact(self) -> ModelArtifact:
        artifact = deserialize(self.content)
        if artifact.name != self.name or artifact.version != self.version:
            raise CorruptArtifactError(
                f"record {self.name} {self.version} holds a {artifact.name} {artifact.version} artifact"
            )
        return artifact


def serialize(artifact: ModelArtifact) -> bytes:
    """
    Args:
        artifact: Trained model artifact.
    Returns:
        Self-describing bytes that ``deserialize`` turns back into an
        equivalent artifact.
    """
    envelope = {
        "format": ARTIFACT_FORMAT,
        "kind": artifact.kind.value,
        "name": artifact.name,
        "version": artifact.version,
        "state": artifact.payload.to_state(),
    }
    buffer = io.BytesIO()
    joblib.dump(envelope, buffer, compress=3)
    return buffer.getvalue()


def deserialize(data: bytes) -> ModelArtifact:
    """
    Rebuild an artifact from ``serialize`` output. The bytes are unpickled,
    so only load artifacts from a trusted source.
    Args:
        data: Serialized artifact.
    Returns:
        The reconstructed ModelArtifact.
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise CorruptArtifactError(f"model artifact must be bytes, got {type(data).__name__}")

    try:
        envelope = joblib.load(io.BytesIO(bytes(data)))
    except Exception as e:
        raise CorruptArtifactError(f"cannot read model artifact: {e}") from e

    if not isinstance(envelope, dict) or envelope.get("format") != ARTIFACT_FORMAT:
        raise CorruptArtifactError("bytes do not hold a randomcut model artifact")

    version = envelope.get("version")
    if version != MODEL_VERSION:
        raise CorruptArtifactError(f"unsupported model version {version!r}, expected {MODEL_VERSION}")

    try:
        kind = ArtifactKind(envelope.get("kind"))
    except ValueError as e:
        raise CorruptArtifactError(f"unknown model kind {envelope.get('kind')!r}") from e

    try:
        payload = _payload_type(kind).from_state(envelope["state"])
        return ModelArtifact(kind=kind, payload=payload, name=envelope["name"], version=version)
    except (KeyError, TypeError, ValueError, IndexError) as e:
        raise CorruptArtifactError(f"malformed {kind.value} model state: {e}") from e


def resolve_model(model: Any, kind: ArtifactKind) -> ModelArtifact | None:
    """
    Accept a ModelArtifact or a ModelRecord and return the artifact if it is
    of the expected kind, otherwise None.
    """
    if isinstance(model, ModelRecord):
        model = model.to_artifact()
    if isinstance(model, ModelArtifact) and model.kind == kind:
        return model
    return None
