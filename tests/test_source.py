"""
Source and Frame Tests
======================

Capture conversion and frame geometry.
"""

import numpy as np
import pytest

from chroma_router.errors import MalformedFrame, SourceUnavailable
from chroma_router.stream.frame import Frame
from chroma_router.stream.source import CameraSource


class FakeCapture:
    """Stands in for cv2.VideoCapture, replaying a list of images."""

    def __init__(self, images):
        self.images = list(images)
        self.released = False

    def isOpened(self):
        return not self.released

    def read(self):
        if not self.images:
            return False, None
        return True, self.images.pop(0)

    def release(self):
        self.released = True


def camera_with(images):
    source = CameraSource(device="fake")
    source._capture = FakeCapture(images)
    return source


class TestCameraSource:
    """Tests for CameraSource."""

    def test_open_missing_device(self, tmp_path):
        source = CameraSource(device=str(tmp_path / "missing.avi"))
        with pytest.raises(SourceUnavailable):
            source.open()

    def test_read_before_open(self):
        with pytest.raises(SourceUnavailable):
            CameraSource().read()

    def test_bgr_converted_to_opaque_bgra(self):
        bgr = np.zeros((3, 4, 3), dtype=np.uint8)
        bgr[...] = (10, 20, 30)
        source = camera_with([bgr])

        frame = source.read()

        assert (frame.width, frame.height, frame.stride) == (4, 3, 16)
        assert frame.frame_id == 0
        assert bytes(frame.data[:4]) == bytes((10, 20, 30, 255))

    def test_frame_ids_increase(self):
        images = [np.zeros((2, 2, 3), dtype=np.uint8) for _ in range(3)]
        source = camera_with(images)

        assert [source.read().frame_id for _ in range(3)] == [0, 1, 2]

    def test_gray_input(self):
        source = camera_with([np.full((2, 2), 77, dtype=np.uint8)])
        assert bytes(source.read().data[:4]) == bytes((77, 77, 77, 255))

    def test_read_failure(self):
        source = camera_with([])
        with pytest.raises(SourceUnavailable):
            source.read()

    def test_size_change_rejected(self):
        source = camera_with([
            np.zeros((2, 2, 3), dtype=np.uint8),
            np.zeros((4, 4, 3), dtype=np.uint8),
        ])
        source.read()
        with pytest.raises(SourceUnavailable):
            source.read()

    def test_close_releases(self):
        source = camera_with([])
        capture = source._capture
        source.close()

        assert capture.released
        assert not source.is_open


class TestFrame:
    """Tests for Frame geometry."""

    def test_pixels_is_writable_view(self):
        frame = Frame(width=2, height=1, stride=8, data=bytes(8))
        frame.pixels()[0, 1] = (1, 2, 3, 4)
        assert bytes(frame.data) == bytes((0, 0, 0, 0, 1, 2, 3, 4))

    def test_from_array(self, random_pixels):
        frame = Frame.from_array(random_pixels, frame_id=9)

        assert (frame.width, frame.height, frame.stride) == (64, 48, 256)
        np.testing.assert_array_equal(frame.pixels(), random_pixels)

    def test_from_array_rejects_rgb(self):
        with pytest.raises(MalformedFrame):
            Frame.from_array(np.zeros((2, 2, 3), dtype=np.uint8))

    @pytest.mark.parametrize(
        "width,height,stride,length",
        [(0, 2, 16, 0), (4, 2, 12, 24), (4, 2, 16, 31), (4, 2, -16, 33)],
    )
    def test_invalid_geometry(self, width, height, stride, length):
        frame = Frame(width=width, height=height, stride=stride, data=bytes(length))
        with pytest.raises(MalformedFrame):
            frame.validate()

    def test_negative_stride_valid(self):
        frame = Frame(width=4, height=2, stride=-16, data=bytes(32))
        frame.validate()
        assert frame.bottom_up
        assert frame.row_bytes == 16
