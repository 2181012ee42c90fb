"""Tests for RGBA compositing and PNG encoding."""

from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image
import pytest

from rmbg_service.compositing import composite, encode_png


def test_rgb_is_copied_and_alpha_comes_from_mask(random_image: Image.Image, rng) -> None:
    alpha = rng.integers(0, 256, size=(23, 37), dtype=np.uint8)

    out = composite(random_image, Image.fromarray(alpha))

    assert out.mode == "RGBA"
    assert out.size == random_image.size
    out_np = np.asarray(out)
    assert np.array_equal(out_np[..., :3], np.asarray(random_image))
    assert np.array_equal(out_np[..., 3], alpha)


def test_source_alpha_is_replaced() -> None:
    source = Image.new("RGBA", (5, 5), (9, 8, 7, 10))

    out = np.asarray(composite(source, Image.new("L", (5, 5), 200)))

    assert (out[..., :3] == [9, 8, 7]).all()
    assert (out[..., 3] == 200).all()


def test_size_mismatch_is_rejected() -> None:
    with pytest.raises(ValueError):
        composite(Image.new("RGB", (4, 4)), Image.new("L", (4, 5)))


def test_encode_png_produces_rgba_png() -> None:
    image = Image.new("RGBA", (6, 3), (1, 2, 3, 4))

    decoded = Image.open(BytesIO(encode_png(image)))

    assert decoded.format == "PNG"
    assert decoded.mode == "RGBA"
    assert decoded.size == (6, 3)
