"""Merge source colors with the resized mask and encode the result."""

from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image

from .errors import EncodeError


def composite(source: Image.Image, mask: Image.Image) -> Image.Image:
    """
    Copy R, G, B from ``source`` and take alpha from ``mask``. O(width * height).

    No blending or premultiplication: color channels are byte-identical to the
    decoded input.
    """
    if source.size != mask.size:
        raise ValueError(f"Mask size {mask.size} does not match image size {source.size}")

    rgb = np.asarray(source.convert("RGB"), dtype=np.uint8)
    alpha = np.asarray(mask.convert("L"), dtype=np.uint8)
    rgba = np.dstack((rgb, alpha))
    return Image.fromarray(rgba)  # (H, W, 4) uint8 -> RGBA


def encode_png(image: Image.Image) -> bytes:
    buf = BytesIO()
    try:
        image.save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodeError(f"Failed to encode PNG: {exc}") from exc
    return buf.getvalue()
