"""Failure kinds surfaced by the background-removal pipeline.

Every error aborts the request that raised it. None of them are retried:
the model is deterministic, so a second attempt would fail the same way.
"""


class BackgroundRemovalError(Exception):
    """Base class for every pipeline failure."""


class DecodeError(BackgroundRemovalError, ValueError):
    """Input bytes are not a decodable raster image."""


class ModelNotInitialized(BackgroundRemovalError):
    """The inference handle was never set up (or failed to load at startup)."""


class ModelLoadError(BackgroundRemovalError):
    """Loading the model weights into an inference engine failed."""


class TensorCreationError(BackgroundRemovalError):
    """The input tensor could not be materialized."""


class InferenceError(BackgroundRemovalError):
    """The engine faulted while running, or returned an unusable tensor."""


class OutputMissingError(BackgroundRemovalError):
    """The engine result has no tensor under the expected output name."""


class EncodeError(BackgroundRemovalError):
    """The composited image could not be serialized."""
