"""Exception hierarchy for model loading, preprocessing, and inference."""

from __future__ import annotations


class WasteLensError(Exception):
    """Base class for all WasteLens errors."""


class ResourceNotFoundError(WasteLensError, LookupError):
    """The named model artifact does not exist in the resource store."""


class ModelLoadError(WasteLensError):
    """The artifact bytes could not be turned into an inference session."""


class InferenceError(WasteLensError):
    """A classification call failed (closed handle, shape mismatch, runtime failure)."""


class ImageDecodeError(WasteLensError, ValueError):
    """Uploaded bytes are not a decodable image or exceed the configured limits."""
