"""
RMBG background removal package.

Exposes reusable primitives for decoding and preprocessing images, running
the segmentation model behind a serialized handle, turning its activations
into an alpha mask, and serving the FastAPI application.
"""

from .errors import (
    BackgroundRemovalError,
    DecodeError,
    EncodeError,
    InferenceError,
    ModelLoadError,
    ModelNotInitialized,
    OutputMissingError,
    TensorCreationError,
)
from .model_context import ModelContext, init_model_or_warn
from .pipeline import remove_background, remove_background_from_image

__all__ = [
    "BackgroundRemovalError",
    "DecodeError",
    "EncodeError",
    "InferenceError",
    "ModelContext",
    "ModelLoadError",
    "ModelNotInitialized",
    "OutputMissingError",
    "TensorCreationError",
    "init_model_or_warn",
    "remove_background",
    "remove_background_from_image",
]
