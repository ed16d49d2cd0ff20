"""
Test Configuration
==================

Pytest fixtures and test doubles for the chroma router.
"""

import threading
import time
from typing import List, Optional

import numpy as np
import pytest

from chroma_router.errors import SinkUnavailable, SourceUnavailable
from chroma_router.stream.frame import Frame


def solid_frame(bgra, width: int = 4, height: int = 3, frame_id: int = 0) -> Frame:
    """Frame filled with one BGRA pixel value."""
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[...] = bgra
    return Frame.from_array(pixels, frame_id=frame_id)


def tagged_frame(frame_id: int, width: int = 4, height: int = 2) -> Frame:
    """Opaque frame whose first blue byte carries its frame id."""
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    pixels[0, 0, 0] = frame_id % 256
    return Frame.from_array(pixels, frame_id=frame_id)


class ListSource:
    """
    Source replaying a list of frames.

    When the list runs out, read() blocks until ``released`` is set and
    then raises SourceUnavailable.
    """

    def __init__(
        self,
        frames: List[Frame],
        interval: float = 0.0,
        fail_open: bool = False,
        fail_after: Optional[int] = None,
    ) -> None:
        self.frames = list(frames)
        self.interval = interval
        self.fail_open = fail_open
        self.fail_after = fail_after
        self.delivered = 0
        self.opened = False
        self.closed = False
        self.released = threading.Event()

    def open(self) -> None:
        if self.fail_open:
            raise SourceUnavailable("device 0 not found")
        self.opened = True

    def read(self) -> Frame:
        if self.fail_after is not None and self.delivered >= self.fail_after:
            raise SourceUnavailable("camera unplugged")
        if self.delivered >= len(self.frames):
            self.released.wait(timeout=5.0)
            raise SourceUnavailable("source exhausted")
        if self.interval:
            time.sleep(self.interval)
        frame = self.frames[self.delivered]
        self.delivered += 1
        return frame

    def close(self) -> None:
        self.closed = True
        self.released.set()


class RecordingSink:
    """Sink keeping every payload; can be slowed down or made to fail."""

    def __init__(self, delay: float = 0.0, fail: bool = False, on_write=None) -> None:
        self.delay = delay
        self.fail = fail
        self.on_write = on_write
        self.payloads: List[bytes] = []
        self.opened_with = None
        self.closed = False

    def open(self, width: int, height: int, fps: int) -> None:
        self.opened_with = (width, height, fps)

    def write(self, payload: bytes) -> None:
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise SinkUnavailable("virtual camera gone")
        self.payloads.append(payload)
        if self.on_write is not None:
            self.on_write(self)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def green_key():
    from chroma_router.models.color import Color

    return Color(0, 255, 0)


@pytest.fixture
def random_pixels():
    """Deterministic random BGRA image, 48 rows by 64 columns."""
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(48, 64, 4), dtype=np.uint8)
