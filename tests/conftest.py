"""Shared fixtures."""

from __future__ import annotations

import numpy as np
from PIL import Image
import pytest

from rmbg_service.model_context import ModelContext

from .stubs import StubEngine, quadrant_mask


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def random_image(rng: np.random.Generator) -> Image.Image:
    pixels = rng.integers(0, 256, size=(23, 37, 3), dtype=np.uint8)
    return Image.fromarray(pixels)


@pytest.fixture
def stub_engine() -> StubEngine:
    return StubEngine(mask=quadrant_mask())


@pytest.fixture
def ready_context(stub_engine: StubEngine) -> ModelContext:
    return ModelContext(engine=stub_engine)
