"""Turn raw RMBG activations into an 8-bit alpha mask at the source resolution."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from .config import MODEL_INPUT_SIZE
from .errors import InferenceError

logger = logging.getLogger(__name__)


def normalize_mask(raw_mask: np.ndarray, size: int = MODEL_INPUT_SIZE) -> np.ndarray:
    """
    Min-max rescale the first ``size * size`` activations to uint8 [0, 255].

    Values past ``size * size`` are ignored. A flat activation map (max == min)
    yields an all-zero mask, i.e. fully transparent. NaN is treated as the
    minimum and +/-inf are pinned to the finite extremes. O(size * size).
    """
    count = size * size
    values = np.asarray(raw_mask, dtype=np.float64).reshape(-1)
    if values.size < count:
        raise InferenceError(f"Model output has {values.size} values, expected at least {count}")
    values = values[:count]

    finite = np.isfinite(values)
    if not finite.any():
        logger.debug("mask has no finite values; returning empty mask")
        return np.zeros((size, size), dtype=np.uint8)

    lo = float(values[finite].min())
    hi = float(values[finite].max())
    logger.debug("mask range: %s to %s", lo, hi)
    if hi <= lo:
        return np.zeros((size, size), dtype=np.uint8)

    values = np.nan_to_num(values, nan=lo, posinf=hi, neginf=lo)
    scaled = (values - lo) / (hi - lo) * 255.0
    # Round half up; the clip only absorbs float error at the endpoints.
    mask = np.clip(np.floor(scaled + 0.5), 0, 255).astype(np.uint8)
    return mask.reshape(size, size)


def resize_mask(mask: np.ndarray, target_size: Tuple[int, int]) -> Image.Image:
    """Lanczos-resample a 2D uint8 mask to ``(width, height)``, same filter as preprocessing."""
    mask_image = Image.fromarray(np.ascontiguousarray(mask, dtype=np.uint8))
    if mask_image.size == tuple(target_size):
        return mask_image
    return mask_image.resize(tuple(target_size), Image.Resampling.LANCZOS)


def postprocess(
    raw_mask: np.ndarray,
    target_width: int,
    target_height: int,
    debug_dir: Optional[Path] = None,
) -> Image.Image:
    """
    Raw activations -> single-channel alpha image of ``target_width x target_height``.

    With ``debug_dir`` set, both the model-size and the resized mask are dumped there.
    """
    normalized = normalize_mask(raw_mask)
    logger.debug("resizing mask back to %dx%d", target_width, target_height)
    resized = resize_mask(normalized, (target_width, target_height))
    if debug_dir is not None:
        dump_debug_masks(normalized, resized, debug_dir)
    return resized


def dump_debug_masks(normalized: np.ndarray, resized: Image.Image, debug_dir: Path) -> None:
    """Write the model-size and source-size masks for inspection when DEBUG is enabled."""
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(debug_dir / "mask_model.png"), normalized)
        cv2.imwrite(str(debug_dir / "mask_resized.png"), np.asarray(resized, dtype=np.uint8))
        logger.debug("postprocess: wrote debug masks to %s", debug_dir)
    except Exception as exc:  # noqa: BLE001
        logger.warning("postprocess: failed to write debug masks: %s", exc)
