"""
Frame Sources
=============

Capture-side collaborators that deliver BGRA frames.

Components:
    - FrameSource: Protocol every source implements
    - CameraSource: OpenCV VideoCapture (device index, file or URL)

Design Rules:
    - read() blocks until a frame is available
    - Failures raise SourceUnavailable; the pipeline stops instead of
      retrying in a tight loop
    - Frame size is fixed for the session once the first frame is read
"""

import logging
import time
from typing import Optional, Protocol, Union

import cv2
import numpy as np

from chroma_router.errors import SourceUnavailable
from chroma_router.stream.frame import Frame


logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    """
    Protocol for capture sources.

    Implementations hand out a new Frame per read(); the caller owns it.
    """

    def open(self) -> None:
        """Acquire the device. Raises SourceUnavailable on failure."""
        ...

    def read(self) -> Frame:
        """Block for the next frame. Raises SourceUnavailable on failure."""
        ...

    def close(self) -> None:
        """Release the device."""
        ...


class CameraSource:
    """
    OpenCV capture source.

    Captured BGR frames are converted to packed BGRA with opaque alpha.

    Attributes:
        device: Device index, file path or stream URL
        width: Requested width (the driver may pick another)
        height: Requested height
        frames_read: Frames delivered so far
    """

    def __init__(
        self,
        device: Union[int, str] = 0,
        width: int = 720,
        height: int = 480,
    ) -> None:
        self.device = device
        self.width = width
        self.height = height
        self.frames_read: int = 0
        self._capture: Optional[cv2.VideoCapture] = None
        self._frame_size: Optional[tuple] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None and self._capture.isOpened()

    def open(self) -> None:
        """
        Open the capture device.

        Raises:
            SourceUnavailable: If OpenCV cannot open the device
        """
        capture = cv2.VideoCapture(self.device)
        if not capture.isOpened():
            capture.release()
            raise SourceUnavailable(f"Could not open capture device: {self.device}")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture = capture

        logger.info(
            f"CameraSource opened: device={self.device}, "
            f"requested={self.width}x{self.height}"
        )

    def read(self) -> Frame:
        """
        Read the next frame.

        Returns:
            Packed top-down BGRA frame

        Raises:
            SourceUnavailable: If the device is closed or the read fails
        """
        if self._capture is None:
            raise SourceUnavailable("Capture device is not open")

        ok, bgr = self._capture.read()
        if not ok or bgr is None:
            raise SourceUnavailable(
                f"Read failed on capture device {self.device} "
                f"after {self.frames_read} frames"
            )

        frame = self._to_frame(bgr)
        self.frames_read += 1
        return frame

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"CameraSource closed after {self.frames_read} frames")

    def _to_frame(self, bgr: np.ndarray) -> Frame:
        if bgr.ndim == 2:
            bgra = cv2.cvtColor(bgr, cv2.COLOR_GRAY2BGRA)
        elif bgr.shape[2] == 4:
            bgra = bgr
        else:
            bgra = cv2.cvtColor(bgr, cv2.COLOR_BGR2BGRA)

        size = bgra.shape[:2]
        if self._frame_size is None:
            self._frame_size = size
            logger.info(f"Capture frame size: {size[1]}x{size[0]}")
        elif size != self._frame_size:
            raise SourceUnavailable(
                f"Capture size changed mid-session: "
                f"{self._frame_size[1]}x{self._frame_size[0]} -> {size[1]}x{size[0]}"
            )

        return Frame.from_array(
            bgra,
            frame_id=self.frames_read,
            timestamp=time.monotonic(),
        )
