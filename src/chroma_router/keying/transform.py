"""
Pixel Transform
===============

Applies a classifier and a compositor to every pixel of a frame.

Each pixel's output depends only on its own bytes and on the immutable
classifier/compositor configuration, so rows are split into contiguous
bands and processed on a short-lived thread pool. numpy releases the GIL
for the heavy array work, which lets bands run on separate cores.

Any partition of the rows gives byte-identical output.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

import numpy as np

from chroma_router.keying.classifiers import Classifier
from chroma_router.keying.compositor import Compositor
from chroma_router.stream.frame import Frame


logger = logging.getLogger(__name__)


# Bands smaller than this are not worth a thread hop
MIN_ROWS_PER_BAND = 16


def partition_rows(height: int, parts: int) -> List[Tuple[int, int]]:
    """
    Split ``height`` rows into at most ``parts`` contiguous ranges.

    Returns:
        List of (start, stop) pairs covering [0, height) in order
    """
    parts = max(1, min(parts, height))
    base, extra = divmod(height, parts)
    ranges = []
    start = 0
    for i in range(parts):
        stop = start + base + (1 if i < extra else 0)
        ranges.append((start, stop))
        start = stop
    return ranges


class PixelTransform:
    """
    Frame-wide chroma-key transform.

    Attributes:
        classifier: Opacity metric
        compositor: Opacity-to-pixel rule
        workers: Upper bound on parallel bands per frame

    Example:
        transform = PixelTransform(classifier, compositor, workers=4)
        transform.apply(frame)   # frame.data rewritten in place
    """

    def __init__(
        self,
        classifier: Classifier,
        compositor: Compositor,
        workers: int = 0,
    ) -> None:
        """
        Initialize transform.

        Args:
            classifier: Opacity metric
            compositor: Compositing rule
            workers: Maximum worker threads; 0 uses the CPU count
        """
        if workers < 0:
            raise ValueError("workers must be >= 0")

        self.classifier = classifier
        self.compositor = compositor
        self.workers = workers or os.cpu_count() or 1

        logger.info(
            f"PixelTransform initialized: classifier={classifier.name}, "
            f"{compositor}, workers={self.workers}"
        )

    def apply(self, frame: Frame) -> Frame:
        """
        Transform a frame in place.

        Args:
            frame: Frame to transform; its buffer is rewritten

        Returns:
            The same frame

        Raises:
            MalformedFrame: If frame geometry does not match its buffer
        """
        pixels = frame.pixels()
        parts = max(1, min(self.workers, frame.height // MIN_ROWS_PER_BAND))
        self.apply_array(pixels, partition_rows(frame.height, parts))
        return frame

    def apply_array(
        self,
        bgra: np.ndarray,
        row_ranges: Optional[Sequence[Tuple[int, int]]] = None,
    ) -> None:
        """
        Transform a (H, W, 4) uint8 array in place.

        Args:
            bgra: Pixel array, modified in place
            row_ranges: Row bands to process independently; defaults to the
                whole array as a single band
        """
        if row_ranges is None:
            row_ranges = [(0, bgra.shape[0])]

        if len(row_ranges) == 1:
            start, stop = row_ranges[0]
            self._apply_band(bgra[start:stop])
            return

        with ThreadPoolExecutor(
            max_workers=min(self.workers, len(row_ranges)),
            thread_name_prefix="pixel-transform",
        ) as pool:
            futures = [
                pool.submit(self._apply_band, bgra[start:stop])
                for start, stop in row_ranges
            ]
            for future in futures:
                future.result()

    def _apply_band(self, band: np.ndarray) -> None:
        if band.size == 0:
            return
        opacity = self.classifier.opacity_map(band)
        self.compositor.apply(band, opacity)
