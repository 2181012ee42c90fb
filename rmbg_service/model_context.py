"""
Shared, serialized access to the RMBG inference engine.

A ``ModelContext`` is created once per process (or per test) and passed to
the pipeline explicitly. It:
 - holds an optional engine, empty until ``init_model`` succeeds,
 - fails fast with ``ModelNotInitialized`` instead of blocking when empty,
 - lets exactly one ``run`` execute against the engine at a time.

Everything outside ``run`` (decode, resize, normalize, composite) stays
lock-free, so concurrent requests only queue on the forward pass itself.
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Optional, Union

import numpy as np

from . import config
from .engines import InferenceEngine, load_engine
from .errors import InferenceError, ModelLoadError, ModelNotInitialized, OutputMissingError

logger = logging.getLogger(__name__)

INPUT_NAME = "input"
OUTPUT_NAME = "output"


class ModelContext:
    def __init__(self, engine: Optional[InferenceEngine] = None):
        self._engine = engine
        self._run_lock = Lock()
        self._init_lock = Lock()

    @property
    def is_ready(self) -> bool:
        return self._engine is not None

    def attach(self, engine: InferenceEngine) -> None:
        """Install an already constructed engine (stubs, custom runtimes)."""
        with self._init_lock:
            if self._engine is not None:
                raise ModelLoadError("RMBG model already initialized")
            self._engine = engine

    def init_model(self, model_path: Union[str, Path], settings: Optional[config.Settings] = None) -> None:
        """
        Load the model at ``model_path`` into this context.

        Raises:
            ModelLoadError: missing file, unsupported format, engine failure,
                or a second initialization of the same context.
        """
        with self._init_lock:
            if self._engine is not None:
                raise ModelLoadError("RMBG model already initialized")
            self._engine = load_engine(Path(model_path), settings)
        logger.info("RMBG model loaded from %s", model_path)

    def run(self, tensor: np.ndarray) -> np.ndarray:
        """Run one forward pass and return the raw mask activations."""
        engine = self._engine
        if engine is None:
            raise ModelNotInitialized("RMBG model not initialized. Model file may be missing.")

        with self._run_lock:
            try:
                outputs = engine.run({INPUT_NAME: tensor})
            except Exception as exc:  # noqa: BLE001
                raise InferenceError(f"Failed to run inference: {exc}") from exc

        if outputs is None or OUTPUT_NAME not in outputs:
            raise OutputMissingError(f"No '{OUTPUT_NAME}' tensor in model result")
        return np.asarray(outputs[OUTPUT_NAME])


def init_model_or_warn(
    context: ModelContext,
    model_path: Union[str, Path],
    settings: Optional[config.Settings] = None,
) -> bool:
    """
    Startup initialization that degrades instead of crashing the process.

    On failure the context stays empty and later requests get
    ``ModelNotInitialized``.
    """
    try:
        context.init_model(model_path, settings)
    except ModelLoadError as exc:
        logger.warning("Background removal disabled: %s", exc)
        return False
    return True
