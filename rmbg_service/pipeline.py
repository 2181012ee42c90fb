"""
High-level RMBG processing pipeline.

`remove_background` is the main entry point used by the HTTP API, the batch
runner and the local CLI helper. It keeps orchestration simple:
bytes in -> decode -> preprocess -> model -> mask -> composite -> PNG bytes out.

All steps are synchronous and CPU bound. Only ``ModelContext.run`` is
serialized; async callers must push this work onto a thread pool.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PIL import Image

from . import config
from .compositing import composite, encode_png
from .errors import ModelNotInitialized
from .model_context import ModelContext
from .postprocessing import postprocess
from .preprocessing import decode_image, preprocess

logger = logging.getLogger(__name__)


def remove_background_from_image(
    image: Image.Image,
    context: ModelContext,
    settings: Optional[config.Settings] = None,
) -> Image.Image:
    """Cut out ``image`` and return an RGBA image of the same size."""
    settings = settings or config.get_settings()
    preprocessed = preprocess(image)
    raw_mask = context.run(preprocessed.tensor)

    width, height = preprocessed.orig_size
    debug_dir = Path(settings.debug_output_dir) if settings.debug else None
    mask = postprocess(raw_mask, width, height, debug_dir=debug_dir)

    return composite(preprocessed.original_image, mask)


def remove_background(
    image_bytes: bytes,
    context: ModelContext,
    settings: Optional[config.Settings] = None,
) -> bytes:
    """
    Full pipeline from encoded image bytes to RGBA PNG bytes.

    Raises:
        ModelNotInitialized: the context has no engine (checked before decoding).
        DecodeError, TensorCreationError, InferenceError, OutputMissingError,
        EncodeError: see ``rmbg_service.errors``.
    """
    if not context.is_ready:
        raise ModelNotInitialized("RMBG model not initialized. Model file may be missing.")

    logger.debug("starting background removal, input size: %d bytes", len(image_bytes))
    image = decode_image(image_bytes)
    result = remove_background_from_image(image, context, settings=settings)
    png_bytes = encode_png(result)
    logger.debug(
        "background removal complete %dx%d, output size: %d bytes",
        result.width,
        result.height,
        len(png_bytes),
    )
    return png_bytes
