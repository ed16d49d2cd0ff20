"""
Frame Data Model
=================

Raw BGRA frame passed between capture, processing and output.

Design Rules:
    - Pixels are packed BGRA, one byte per channel
    - Row offsets always use abs(stride); a negative stride marks a
      bottom-up buffer
    - Buffer length must equal abs(stride) * height, checked by validate()
    - A frame has exactly one owner at a time and is modified in place
      by the processing stage
"""

import time
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from chroma_router.errors import MalformedFrame


BYTES_PER_PIXEL = 4


@dataclass(slots=True)
class Frame:
    """
    Captured frame.

    Attributes:
        width: Width in pixels
        height: Height in pixels
        stride: Bytes per row as declared by the source (sign = orientation)
        data: Pixel buffer, abs(stride) * height bytes
        frame_id: Monotonically increasing counter from the source
        timestamp: Capture time (time.monotonic)
    """

    width: int
    height: int
    stride: int
    data: Union[bytearray, bytes]
    frame_id: int = 0
    timestamp: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        # The transform works in place, so keep a mutable buffer
        if not isinstance(self.data, bytearray):
            self.data = bytearray(self.data)

    @property
    def row_bytes(self) -> int:
        """Bytes per row used for all offset arithmetic."""
        return abs(self.stride)

    @property
    def bottom_up(self) -> bool:
        """True when rows are stored bottom row first."""
        return self.stride < 0

    def validate(self) -> None:
        """
        Check that geometry matches the buffer.

        Raises:
            MalformedFrame: If dimensions, stride and length disagree
        """
        if self.width <= 0 or self.height <= 0:
            raise MalformedFrame(
                f"Frame {self.frame_id}: invalid dimensions {self.width}x{self.height}"
            )
        if self.row_bytes < self.width * BYTES_PER_PIXEL:
            raise MalformedFrame(
                f"Frame {self.frame_id}: stride {self.stride} too small for "
                f"width {self.width}"
            )
        expected = self.row_bytes * self.height
        if len(self.data) != expected:
            raise MalformedFrame(
                f"Frame {self.frame_id}: buffer is {len(self.data)} bytes, "
                f"expected {expected} ({self.row_bytes} x {self.height})"
            )

    def pixels(self) -> np.ndarray:
        """
        Writable (height, width, 4) view over the buffer.

        Row padding beyond ``width * 4`` is excluded. Rows are in memory
        order, so a bottom-up frame yields its bottom row first.

        Raises:
            MalformedFrame: If the frame fails validation
        """
        self.validate()
        return np.ndarray(
            shape=(self.height, self.width, BYTES_PER_PIXEL),
            dtype=np.uint8,
            buffer=self.data,
            strides=(self.row_bytes, BYTES_PER_PIXEL, 1),
        )

    @classmethod
    def from_array(cls, bgra: np.ndarray, frame_id: int = 0, timestamp: Optional[float] = None) -> "Frame":
        """
        Build a packed top-down frame from a (H, W, 4) uint8 array.

        Raises:
            MalformedFrame: If the array is not (H, W, 4) uint8
        """
        if bgra.ndim != 3 or bgra.shape[2] != BYTES_PER_PIXEL or bgra.dtype != np.uint8:
            raise MalformedFrame(
                f"Expected (H, W, 4) uint8 array, got {bgra.shape} {bgra.dtype}"
            )
        height, width = bgra.shape[:2]
        return cls(
            width=width,
            height=height,
            stride=width * BYTES_PER_PIXEL,
            data=bytearray(np.ascontiguousarray(bgra).tobytes()),
            frame_id=frame_id,
            timestamp=time.monotonic() if timestamp is None else timestamp,
        )

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the buffer."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"size={self.width}x{self.height}, "
            f"stride={self.stride})"
        )
