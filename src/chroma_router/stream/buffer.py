"""
Frame Slot
==========

Single-slot, latest-wins handoff between capture and processing.

This module provides the FrameSlot class, the only shared mutable state
between the capture loop and the processing loop.

Design Rules:
    - Capacity of exactly one frame
    - put() replaces any pending frame (the old one is dropped)
    - take() returns the pending frame and empties the slot
    - Each operation is one atomic swap under a lock; the lock is never
      held while a frame is transformed or written
    - Does NOT process or modify frames
"""

import logging
import threading
from typing import Optional

from chroma_router.stream.frame import Frame


logger = logging.getLogger(__name__)


class FrameSlot:
    """
    Thread-safe latest-wins frame holder.

    Memory stays bounded to one pending frame no matter how slowly the
    consumer runs; frames the consumer never saw are counted as dropped.

    Attributes:
        dropped_count: Frames overwritten before being taken
        total_put: Total frames ever put into the slot

    Example:
        slot = FrameSlot()

        # Producer
        slot.put(frame)

        # Consumer
        frame = slot.take()
        if frame is not None:
            process(frame)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: Optional[Frame] = None
        self._dropped_count: int = 0
        self._total_put: int = 0
        self._total_taken: int = 0

    @property
    def pending(self) -> bool:
        """Whether a frame is waiting to be taken."""
        with self._lock:
            return self._frame is not None

    @property
    def dropped_count(self) -> int:
        """Frames overwritten before being taken."""
        return self._dropped_count

    @property
    def total_put(self) -> int:
        """Total frames ever put into the slot."""
        return self._total_put

    def put(self, frame: Frame) -> bool:
        """
        Store a frame, replacing any pending one.

        Args:
            frame: Frame to hand off; ownership passes to the slot

        Returns:
            True if the slot was empty, False if a pending frame was dropped
        """
        with self._lock:
            previous = self._frame
            self._frame = frame
            self._total_put += 1
            if previous is not None:
                self._dropped_count += 1

        if previous is not None:
            logger.debug(
                f"Slot overwritten, dropped frame {previous.frame_id}. "
                f"Total dropped: {self._dropped_count}"
            )
        return previous is None

    def take(self) -> Optional[Frame]:
        """
        Remove and return the pending frame.

        Returns:
            Pending frame (ownership passes to the caller), or None
        """
        with self._lock:
            frame = self._frame
            self._frame = None
            if frame is not None:
                self._total_taken += 1
        return frame

    def clear(self) -> bool:
        """
        Discard any pending frame.

        Returns:
            True if a frame was discarded
        """
        return self.take() is not None

    def metrics(self) -> dict:
        """
        Get slot metrics for observability.

        Returns:
            Dict with pending, dropped_count, total_put, total_taken
        """
        with self._lock:
            return {
                "pending": self._frame is not None,
                "dropped_count": self._dropped_count,
                "total_put": self._total_put,
                "total_taken": self._total_taken,
            }
