"""Exceptions raised by the randomcut engines."""


class RandomCutError(Exception):
    """Base class for every error raised by this package."""


class InvalidArgumentError(RandomCutError, ValueError):
    """Invalid parameters, malformed input rows or a missing model."""


class InvalidModelStateError(RandomCutError, RuntimeError):
    """A tree or forest cannot be built or updated from the given data."""


class CorruptArtifactError(RandomCutError, ValueError):
    """Serialized model bytes are unreadable, of an unknown kind or version."""
