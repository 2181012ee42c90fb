"""
Batch worker.

Runs many removal requests concurrently on a thread pool against one shared
``ModelContext``. Decode / resize / composite overlap freely across workers;
the forward pass is still taken one request at a time by the context lock.
Fetching and storing bytes is left to the caller so this can be embedded into
any queue framework.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
from typing import Iterable, List, Optional

from . import config
from .errors import BackgroundRemovalError
from .model_context import ModelContext
from .pipeline import remove_background

logger = logging.getLogger(__name__)


@dataclass
class BatchItem:
    name: str
    image_bytes: bytes


@dataclass
class BatchResult:
    name: str
    png_bytes: Optional[bytes] = None
    error: Optional[BackgroundRemovalError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _process_one(item: BatchItem, context: ModelContext, settings: config.Settings) -> BatchResult:
    logger.info("Processing batch item name=%s", item.name)
    try:
        png_bytes = remove_background(item.image_bytes, context, settings=settings)
    except BackgroundRemovalError as exc:
        logger.warning("Batch item %s failed: %s", item.name, exc)
        return BatchResult(name=item.name, error=exc)
    return BatchResult(name=item.name, png_bytes=png_bytes)


def process_batch(
    items: Iterable[BatchItem],
    context: ModelContext,
    max_workers: Optional[int] = None,
    settings: Optional[config.Settings] = None,
) -> List[BatchResult]:
    """
    Process a batch of images concurrently.

    Returns one ``BatchResult`` per input, in input order. A failing item is
    reported in its result and never aborts the rest of the batch.
    """
    settings = settings or config.get_settings()
    max_workers = max_workers or settings.batch_max_workers
    items = list(items)
    if not items:
        return []

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rmbg") as pool:
        return list(pool.map(lambda item: _process_one(item, context, settings), items))
