"""
Image decoding and preprocessing for the RMBG segmentation model.

The model expects a fixed-size square, channel-first float tensor. Inputs are
stretched to that square regardless of aspect ratio (never cropped) with a
Lanczos filter, then each 8-bit sample is mapped with ``(p / 255 - 0.5) / 1.0``.
The resulting range is [-0.5, 0.5]; this is what the exported weights were
validated against, so it is reproduced literally.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
import logging
from typing import Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import MODEL_INPUT_SIZE
from .errors import DecodeError, TensorCreationError

logger = logging.getLogger(__name__)

NORMALIZE_MEAN = 0.5
NORMALIZE_STD = 1.0

# 16-bit grayscale PNG/TIFF modes. "I" is what older Pillow opens them as.
SIXTEEN_BIT_MODES = {"I;16", "I;16B", "I;16L", "I;16N", "I"}


@dataclass
class PreprocessResult:
    tensor: np.ndarray  # (1, 3, S, S) float32
    original_image: Image.Image
    orig_size: Tuple[int, int]  # (width, height)


def _gray16_to_8bit(image: Image.Image) -> Image.Image:
    """Keep the top byte of 16-bit gray samples; a plain convert would clip them to 255."""
    samples = np.clip(np.asarray(image, dtype=np.int64), 0, 65535) >> 8
    return Image.fromarray(samples.astype(np.uint8))


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info


def decode_image(image_bytes: bytes) -> Image.Image:
    """
    Decode raw bytes into an RGB or RGBA PIL image.

    Palette, grayscale and CMYK inputs are expanded to RGB(A) up front so the
    Lanczos resize below never falls back to nearest-neighbour, which Pillow
    does for palette images.
    """
    if not image_bytes:
        raise DecodeError("Empty image data")
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(f"Failed to decode image: {exc}") from exc
    except Image.DecompressionBombError as exc:
        raise DecodeError(f"Image too large to decode: {exc}") from exc

    if image.mode in SIXTEEN_BIT_MODES:
        image = _gray16_to_8bit(image)
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA" if _has_alpha(image) else "RGB")
    logger.debug("decoded image %dx%d mode=%s", image.width, image.height, image.mode)
    return image


def image_to_tensor(image: Image.Image, size: int = MODEL_INPUT_SIZE) -> np.ndarray:
    """
    Resize, normalize and lay out ``image`` as a (1, 3, size, size) tensor.

    Order matters: resample first, then drop alpha, then normalize, then
    transpose HWC -> CHW. Channel order stays R, G, B as decoded.
    """
    try:
        resized = image.resize((size, size), Image.Resampling.LANCZOS)
        rgb = resized.convert("RGB")
        im_np = np.asarray(rgb, dtype=np.float32) / 255.0
        im_np = (im_np - NORMALIZE_MEAN) / NORMALIZE_STD
        im_np = np.transpose(im_np, (2, 0, 1))  # HWC -> CHW
        tensor = np.ascontiguousarray(im_np[np.newaxis, ...], dtype=np.float32)
    except MemoryError as exc:
        raise TensorCreationError(f"Could not allocate {size}x{size} input tensor") from exc

    if tensor.size != 3 * size * size:
        raise TensorCreationError(f"Unexpected input tensor shape {tensor.shape}")
    return tensor


def preprocess(image: Image.Image) -> PreprocessResult:
    """Build the model input for an already decoded image."""
    tensor = image_to_tensor(image)
    logger.debug("preprocessed %dx%d -> %s", image.width, image.height, tensor.shape)
    return PreprocessResult(tensor=tensor, original_image=image, orig_size=image.size)

