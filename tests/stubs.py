"""Stub inference engines and image helpers shared by the tests."""

from __future__ import annotations

from io import BytesIO
import threading
import time
from typing import Callable, Dict, List, Mapping, Optional

import numpy as np
from PIL import Image

from rmbg_service.config import MODEL_INPUT_SIZE

S = MODEL_INPUT_SIZE


class StubEngine:
    """Records calls and returns a fixed or computed mask under "output"."""

    def __init__(
        self,
        mask: Optional[np.ndarray] = None,
        mask_fn: Optional[Callable[[np.ndarray], np.ndarray]] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        output_name: str = "output",
    ):
        self.mask = mask
        self.mask_fn = mask_fn
        self.delay = delay
        self.error = error
        self.output_name = output_name
        self.calls: List[Mapping[str, np.ndarray]] = []
        self.active = 0
        self.max_active = 0
        self._counter_lock = threading.Lock()

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        with self._counter_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.calls.append(inputs)
            if self.delay:
                time.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if self.mask_fn is not None:
                mask = self.mask_fn(inputs["input"])
            elif self.mask is not None:
                mask = self.mask
            else:
                mask = np.zeros((1, 1, S, S), dtype=np.float32)
            return {self.output_name: mask}
        finally:
            with self._counter_lock:
                self.active -= 1


def quadrant_mask() -> np.ndarray:
    """All zeros except 1.0 in the top-left quadrant."""
    mask = np.zeros((1, 1, S, S), dtype=np.float32)
    mask[0, 0, : S // 2, : S // 2] = 1.0
    return mask


def image_bytes(image: Image.Image, fmt: str = "PNG") -> bytes:
    buf = BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


