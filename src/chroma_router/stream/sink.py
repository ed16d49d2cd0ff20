"""
Frame Sinks
===========

Output-side collaborators that accept the raw pixel stream.

Components:
    - FrameSink: Protocol every sink implements
    - ProcessSink: Launches a consumer process (e.g. a virtual camera
      manager) and writes frames to its stdin
    - FileSink: Writes frames to a file or binary stream
    - SinkWriter: Bounded retry with exponential backoff around a sink;
      drops the frame when retries run out

Design Rules:
    - Writes are blocking; callers run them off the event loop
    - Resolution and pixel format are negotiated in open() and never change
    - The stream has no framing, so a frame is either written whole or the
      stream is given up; a retry resumes at the first byte the sink did
      not take
    - A sink that keeps failing is declared unavailable instead of
      stalling the pipeline forever
"""

import logging
import subprocess
import sys
import time
from typing import BinaryIO, Callable, List, Optional, Protocol, Union

from chroma_router.errors import SinkUnavailable


logger = logging.getLogger(__name__)


def _position(stream: BinaryIO) -> Optional[int]:
    try:
        return stream.tell() if stream.seekable() else None
    except (AttributeError, OSError, ValueError):
        return None


def _write_all(stream: BinaryIO, payload: bytes) -> None:
    """
    Write ``payload`` completely, looping over short writes.

    Raises:
        SinkUnavailable: With ``written`` set to the bytes that reached the
            stream before the failure
    """
    view = memoryview(payload)
    start = _position(stream)
    written = 0

    try:
        while written < len(view):
            count = stream.write(view[written:])
            if count is None:
                # Streams that do not report a count took everything
                count = len(view) - written
            if count == 0:
                raise SinkUnavailable("Sink accepted no bytes", written=written)
            written += count
        stream.flush()
    except BlockingIOError as e:
        raise SinkUnavailable(
            f"Sink write would block: {e}", written=written + e.characters_written
        ) from e
    except (OSError, ValueError) as e:
        end = _position(stream)
        if start is not None and end is not None:
            written = end - start
        raise SinkUnavailable(f"Sink write failed: {e}", written=written) from e

class FrameSink(Protocol):
    """Protocol for raw frame consumers."""

    def open(self, width: int, height: int, fps: int) -> None:
        """Negotiate resolution and rate. Raises SinkUnavailable on failure."""
        ...

    def write(self, payload: bytes) -> None:
        """Write one encoded frame. Raises SinkUnavailable on failure."""
        ...

    def close(self) -> None:
        """Release the sink."""
        ...


class ProcessSink:
    """
    Sink feeding the stdin of an external process.

    The command is a template; ``{fps}``, ``{width}``, ``{height}`` and
    ``{name}`` are filled in when the sink is opened.

    Example:
        sink = ProcessSink(
            ["AkVCamManager", "stream", "--fps", "{fps}", "{name}",
             "RGB24", "{width}", "{height}"],
            device_name="VirtualCamera0",
        )
    """

    def __init__(
        self,
        command: List[str],
        device_name: str = "VirtualCamera0",
        close_timeout: float = 5.0,
    ) -> None:
        if not command:
            raise ValueError("command must not be empty")
        self.command = command
        self.device_name = device_name
        self.close_timeout = close_timeout
        self._process: Optional[subprocess.Popen] = None

    def open(self, width: int, height: int, fps: int) -> None:
        args = [
            part.format(fps=fps, width=width, height=height, name=self.device_name)
            for part in self.command
        ]
        try:
            self._process = subprocess.Popen(args, stdin=subprocess.PIPE, bufsize=0)
        except OSError as e:
            raise SinkUnavailable(f"Could not launch sink process {args[0]}: {e}") from e

        logger.info(f"ProcessSink started: {' '.join(args)} (pid={self._process.pid})")

    def write(self, payload: bytes) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise SinkUnavailable("Sink process is not running")
        if process.poll() is not None:
            raise SinkUnavailable(f"Sink process exited with code {process.returncode}")

        # Unbuffered stdin, so a failed write leaves nothing queued
        _write_all(process.stdin, payload)

    def close(self) -> None:
        process = self._process
        if process is None:
            return
        self._process = None

        try:
            if process.stdin is not None:
                process.stdin.close()
        except OSError as e:
            logger.debug(f"Error closing sink stdin: {e}")

        try:
            process.wait(timeout=self.close_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Sink process did not exit, terminating")
            process.kill()
            process.wait()

        logger.info(f"ProcessSink stopped (exit code {process.returncode})")


class FileSink:
    """
    Sink writing to a file path or an already-open binary stream.

    A path of ``-`` writes to stdout, which suits piping into ffmpeg or
    v4l2loopback tools.
    """

    def __init__(self, target: Union[str, BinaryIO]) -> None:
        self.target = target
        self._stream: Optional[BinaryIO] = None
        self._owns_stream = False

    def open(self, width: int, height: int, fps: int) -> None:
        if isinstance(self.target, str):
            if self.target == "-":
                self._stream = sys.stdout.buffer
            else:
                try:
                    self._stream = open(self.target, "wb", buffering=0)
                except OSError as e:
                    raise SinkUnavailable(f"Could not open sink file {self.target}: {e}") from e
                self._owns_stream = True
        else:
            self._stream = self.target

        logger.info(f"FileSink opened: {self.target} ({width}x{height} @ {fps} fps)")

    def write(self, payload: bytes) -> None:
        if self._stream is None:
            raise SinkUnavailable("Sink file is not open")
        _write_all(self._stream, payload)

    def close(self) -> None:
        if self._stream is not None and self._owns_stream:
            self._stream.close()
        self._stream = None


class SinkWriter:
    """
    Retry-then-drop wrapper around a sink.

    A failed write is retried up to ``retries`` times with exponential
    backoff. If every attempt fails the frame is dropped and the caller
    moves on. After ``max_consecutive_failures`` dropped frames in a row
    the sink is declared unavailable.

    Attributes:
        written: Frames written successfully
        dropped: Frames dropped after exhausting retries
    """

    def __init__(
        self,
        sink: FrameSink,
        retries: int = 3,
        backoff_ms: int = 20,
        max_consecutive_failures: int = 50,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.sink = sink
        self.retries = retries
        self.backoff_ms = backoff_ms
        self.max_consecutive_failures = max_consecutive_failures
        self.written: int = 0
        self.dropped: int = 0
        self._consecutive_failures: int = 0
        self._sleep = sleep

    def write(self, payload: bytes) -> bool:
        """
        Write a frame with retries.

        Each retry resumes at the first byte the sink did not take, so a
        partial write never duplicates bytes in the stream.

        Returns:
            True if written, False if the frame was dropped

        Raises:
            SinkUnavailable: After too many consecutive dropped frames, or
                when retries run out with part of the frame already written
        """
        last_error: Optional[SinkUnavailable] = None
        offset = 0

        for attempt in range(self.retries + 1):
            if attempt:
                self._sleep(self.backoff_ms * (2 ** (attempt - 1)) / 1000.0)
            try:
                self.sink.write(payload[offset:] if offset else payload)
            except SinkUnavailable as e:
                last_error = e
                offset += e.written
                logger.debug(
                    f"Sink write attempt {attempt + 1} failed after "
                    f"{offset}/{len(payload)} bytes: {e}"
                )
                continue

            self.written += 1
            self._consecutive_failures = 0
            return True

        self.dropped += 1
        self._consecutive_failures += 1

        if offset:
            # Torn frame in the stream; later frames would be misaligned
            raise SinkUnavailable(
                f"Frame partially written ({offset}/{len(payload)} bytes), "
                f"stream alignment lost: {last_error}"
            )

        logger.warning(
            f"Dropped frame after {self.retries + 1} failed writes "
            f"({self._consecutive_failures} in a row): {last_error}"
        )

        if self._consecutive_failures >= self.max_consecutive_failures:
            raise SinkUnavailable(
                f"Sink failed {self._consecutive_failures} frames in a row: {last_error}"
            )
        return False
