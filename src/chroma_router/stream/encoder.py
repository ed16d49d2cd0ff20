"""
Output Encoder
==============

Converts processed BGRA frames into the sink's raw pixel stream.

Formats:
    - rgb24: 3 bytes/pixel, row-major, top-down. Transparent pixels are
      flattened over a background image or a solid background color.
    - bgra: 4 bytes/pixel passthrough, row-major, top-down.

No framing or length headers are written between frames. Resolution and
format are fixed for the session.
"""

import logging
from typing import Optional, Sequence

import cv2
import numpy as np

from chroma_router.errors import ConfigurationError, MalformedFrame
from chroma_router.stream.frame import Frame


logger = logging.getLogger(__name__)


PIXEL_FORMATS = {
    "rgb24": 3,
    "bgra": 4,
}


def load_background(path: str) -> np.ndarray:
    """
    Load a background image as an RGB array.

    Raises:
        ConfigurationError: If the image cannot be read
    """
    bgr = cv2.imread(path, cv2.IMREAD_COLOR)
    if bgr is None:
        raise ConfigurationError(f"Could not load background image: {path}")
    logger.info(f"Loaded background image {path} ({bgr.shape[1]}x{bgr.shape[0]})")
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)


class OutputEncoder:
    """
    BGRA frame to sink bytes.

    Attributes:
        pixel_format: rgb24 or bgra
        bytes_per_pixel: Output bytes per pixel

    Example:
        encoder = OutputEncoder("rgb24", background=load_background("bg.png"))
        payload = encoder.encode(frame)
    """

    def __init__(
        self,
        pixel_format: str = "rgb24",
        background: Optional[np.ndarray] = None,
        background_color: Sequence[int] = (0, 0, 0),
    ) -> None:
        """
        Initialize encoder.

        Args:
            pixel_format: Sink pixel format
            background: RGB image (H, W, 3) placed behind transparent
                pixels; resized to the frame size on first use
            background_color: RGB fill used when no image is given

        Raises:
            ConfigurationError: If the pixel format is unknown
        """
        if pixel_format not in PIXEL_FORMATS:
            raise ConfigurationError(
                f"Unknown pixel format: {pixel_format} "
                f"(expected one of {', '.join(PIXEL_FORMATS)})"
            )
        self.pixel_format = pixel_format
        self.bytes_per_pixel = PIXEL_FORMATS[pixel_format]
        self._background_source = background
        self._background_color = np.array(background_color[:3], dtype=np.float64)
        self._background: Optional[np.ndarray] = None

    def frame_size(self, width: int, height: int) -> int:
        """Bytes per encoded frame at the given resolution."""
        return width * height * self.bytes_per_pixel

    def encode(self, frame: Frame) -> bytes:
        """
        Encode a frame for the sink.

        Args:
            frame: Processed BGRA frame

        Returns:
            Raw pixel bytes, top-down

        Raises:
            MalformedFrame: If frame geometry does not match its buffer
        """
        pixels = frame.pixels()
        if frame.bottom_up:
            pixels = pixels[::-1]

        if self.pixel_format == "bgra":
            return np.ascontiguousarray(pixels).tobytes()

        return self._flatten(pixels).tobytes()

    def _flatten(self, bgra: np.ndarray) -> np.ndarray:
        """Alpha-composite BGRA over the background, returning RGB uint8."""
        height, width = bgra.shape[:2]
        background = self._background_for(width, height)

        rgb = bgra[..., 2::-1].astype(np.float64)
        alpha = bgra[..., 3:4].astype(np.float64) / 255.0
        out = rgb * alpha + background * (1.0 - alpha)
        return np.clip(np.rint(out), 0, 255).astype(np.uint8)

    def _background_for(self, width: int, height: int) -> np.ndarray:
        if self._background is not None and self._background.shape[:2] == (height, width):
            return self._background

        if self._background is not None:
            raise MalformedFrame(
                f"Frame size changed mid-session: "
                f"{self._background.shape[1]}x{self._background.shape[0]} -> {width}x{height}"
            )

        if self._background_source is not None:
            resized = cv2.resize(
                self._background_source, (width, height), interpolation=cv2.INTER_AREA
            )
            self._background = resized.astype(np.float64)
        else:
            self._background = np.broadcast_to(
                self._background_color, (height, width, 3)
            ).astype(np.float64)

        return self._background
