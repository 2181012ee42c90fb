"""Tests for decoding and tensor preparation."""

from __future__ import annotations

import numpy as np
from PIL import Image
import pytest

from rmbg_service.errors import DecodeError
from rmbg_service.preprocessing import (
    decode_image,
    image_to_tensor,
    preprocess,
)

from .stubs import S, image_bytes


def test_tensor_is_channel_first_fixed_size_for_non_square_input() -> None:
    image = Image.new("RGB", (640, 120), (10, 20, 30))

    tensor = image_to_tensor(image)

    assert tensor.shape == (1, 3, S, S)
    assert tensor.dtype == np.float32
    assert tensor.size == 3 * S * S
    assert tensor.flags["C_CONTIGUOUS"]


def test_channels_keep_rgb_order_and_literal_normalization() -> None:
    image = Image.new("RGB", (50, 70), (255, 0, 128))

    tensor = image_to_tensor(image)

    assert np.allclose(tensor[0, 0], 0.5, atol=1e-6)
    assert np.allclose(tensor[0, 1], -0.5, atol=1e-6)
    assert np.allclose(tensor[0, 2], 128 / 255.0 - 0.5, atol=1e-6)
    assert tensor.min() >= -0.5 and tensor.max() <= 0.5


def test_rows_and_columns_are_not_transposed() -> None:
    # Left half white, right half black: the column axis must carry the edge.
    pixels = np.zeros((64, 64, 3), dtype=np.uint8)
    pixels[:, :32] = 255
    tensor = image_to_tensor(Image.fromarray(pixels), size=64)

    assert np.allclose(tensor[0, 0, :, 0], 0.5, atol=1e-6)
    assert np.allclose(tensor[0, 0, :, -1], -0.5, atol=1e-6)
    assert np.allclose(tensor[0, 0, 0, :], tensor[0, 0, -1, :])


def test_alpha_channel_is_dropped() -> None:
    image = Image.new("RGBA", (20, 20), (40, 80, 120, 255))

    tensor = image_to_tensor(image)

    assert tensor.shape == (1, 3, S, S)
    assert np.allclose(tensor[0, 0], 40 / 255.0 - 0.5, atol=1e-6)


def test_preprocess_keeps_original_image_and_size(random_image: Image.Image) -> None:
    result = preprocess(random_image)

    assert result.orig_size == (37, 23)
    assert result.original_image is random_image


def test_decoded_jpeg_preprocesses() -> None:
    data = image_bytes(Image.new("RGB", (30, 10), (200, 10, 10)), fmt="JPEG")

    result = preprocess(decode_image(data))

    assert result.orig_size == (30, 10)
    assert result.tensor.shape == (1, 3, S, S)


@pytest.mark.parametrize("data", [b"", b"definitely not an image", b"\x89PNG\r\n\x1a\n broken"])
def test_undecodable_bytes_raise_decode_error(data: bytes) -> None:
    with pytest.raises(DecodeError):
        decode_image(data)


def test_decode_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        decode_image(b"nope")


def test_palette_and_grayscale_are_expanded() -> None:
    palette = Image.new("RGB", (8, 8), (1, 2, 3)).convert("P")
    gray_alpha = Image.new("LA", (8, 8), (100, 50))

    assert decode_image(image_bytes(palette)).mode == "RGB"
    assert decode_image(image_bytes(gray_alpha)).mode == "RGBA"
    assert decode_image(image_bytes(Image.new("L", (8, 8), 7))).mode == "RGB"


def test_sixteen_bit_gray_is_scaled_not_clipped() -> None:
    samples = np.array([[0, 255, 256, 40000, 65535]], dtype=np.uint16).repeat(3, axis=0)

    decoded = decode_image(image_bytes(Image.fromarray(samples)))

    assert decoded.mode == "RGB"
    rgb = np.asarray(decoded)
    expected = (samples >> 8).astype(np.uint8)
    for channel in range(3):
        assert np.array_equal(rgb[..., channel], expected)
