"""
Keying Pipeline
===============

Wires capture, the latest-wins slot, the pacer, the pixel transform and
the sink into one real-time pipeline.

Loops:
    - Capture: reads the source and overwrites the slot with each frame
    - Processing: on every pacer tick takes the slot, transforms the
      frame, encodes it and writes it to the sink

State machine:
    IDLE -> STREAMING -> STOPPED

Design Rules:
    - Both loops poll one shared stop flag at the top of their bodies
    - Blocking source reads, the transform and sink writes run in worker
      threads, so a slow sink never holds up capture
    - Frames reach the sink in strictly increasing capture order; frames
      overwritten in the slot are dropped, never queued
    - The sink is opened with the first frame's size; later frames of another
      size are rejected as malformed
    - Source and sink failures stop the pipeline and are recorded in its
      status instead of being retried in a tight loop
"""

import asyncio
import logging
import threading
from typing import Optional, Tuple

from chroma_router.errors import MalformedFrame, SinkUnavailable, SourceUnavailable
from chroma_router.keying.transform import PixelTransform
from chroma_router.models.status import PipelineState, PipelineStatus
from chroma_router.stream.buffer import FrameSlot
from chroma_router.stream.encoder import OutputEncoder
from chroma_router.stream.frame import Frame
from chroma_router.stream.pacer import Pacer
from chroma_router.stream.sink import SinkWriter
from chroma_router.stream.source import FrameSource


logger = logging.getLogger(__name__)


class Pipeline:
    """
    Real-time chroma-key pipeline.

    Attributes:
        source: Capture collaborator
        writer: Sink with retry/drop policy
        encoder: BGRA to sink format
        transform: Pixel transform, or None to pass frames through
        pacer: Output rate driver
        slot: Latest-wins handoff between the loops

    Example:
        pipeline = Pipeline(source, writer, encoder, transform, fps=25)
        task = asyncio.create_task(pipeline.run())

        # Later, stop gracefully
        pipeline.stop()
        status = await task
    """

    def __init__(
        self,
        source: FrameSource,
        writer: SinkWriter,
        encoder: OutputEncoder,
        transform: Optional[PixelTransform] = None,
        fps: int = 25,
        pacer: Optional[Pacer] = None,
        log_every_n_frames: int = 250,
    ) -> None:
        """
        Initialize pipeline.

        Args:
            source: Frame source
            writer: Sink writer
            encoder: Output encoder
            transform: Chroma-key transform (None disables keying)
            fps: Target output frame rate
            pacer: Custom pacer; defaults to Pacer(fps)
            log_every_n_frames: Progress logging interval

        Raises:
            ConfigurationError: If fps is not positive
        """
        self.source = source
        self.writer = writer
        self.encoder = encoder
        self.transform = transform
        self.fps = fps
        self.pacer = pacer or Pacer(fps)
        self.slot = FrameSlot()
        self.log_every_n_frames = log_every_n_frames

        self._stop_event = threading.Event()
        self._state = PipelineState.IDLE
        self._error: Optional[str] = None
        # Resolution negotiated with the sink; fixed for the session
        self._sink_size: Optional[Tuple[int, int]] = None

        # Counters
        self._frames_captured: int = 0
        self._frames_processed: int = 0
        self._empty_ticks: int = 0
        self._malformed_frames: int = 0
        self._last_frame_id: int = -1

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def last_frame_id(self) -> int:
        """ID of the last frame written to the sink (-1 if none)."""
        return self._last_frame_id

    def status(self) -> PipelineStatus:
        """Snapshot of state, error and counters."""
        return PipelineStatus(
            state=self._state,
            error=self._error,
            frames_captured=self._frames_captured,
            frames_processed=self._frames_processed,
            frames_dropped=self.slot.dropped_count,
            empty_ticks=self._empty_ticks,
            malformed_frames=self._malformed_frames,
            sink_drops=self.writer.dropped,
        )

    def stop(self) -> None:
        """
        Request a cooperative stop.

        Safe to call from any thread. In-flight reads and writes finish
        before the loops exit.
        """
        if not self._stop_event.is_set():
            logger.info("Pipeline stop requested")
        self._stop_event.set()

    async def run(self) -> PipelineStatus:
        """
        Run until stopped or until the source or sink fails.

        Returns:
            Final status; ``error`` is set when a failure stopped the pipeline

        Raises:
            RuntimeError: If the pipeline was already started
        """
        if self._state is not PipelineState.IDLE:
            raise RuntimeError(f"Pipeline cannot start from state {self._state.value}")

        self._state = PipelineState.STREAMING
        logger.info(
            f"Pipeline starting: fps={self.fps}, "
            f"keying={'on' if self.transform else 'off'}, "
            f"format={self.encoder.pixel_format}"
        )

        try:
            opened = False
            try:
                await asyncio.to_thread(self.source.open)
                opened = True
            except SourceUnavailable as e:
                self._fail(e)

            if opened:
                await asyncio.gather(
                    self._guard(self._capture_loop(), "capture"),
                    self._guard(self._processing_loop(), "processing"),
                )
        finally:
            await self._close()
            self._state = PipelineState.STOPPED
            logger.info(
                f"Pipeline stopped: processed={self._frames_processed}, "
                f"dropped={self.slot.dropped_count}, error={self._error}"
            )

        return self.status()

    # -------------------------------------------------------------------------
    # Loops
    # -------------------------------------------------------------------------

    async def _guard(self, loop, name: str) -> None:
        """Run a loop, turning unexpected errors into a recorded stop."""
        try:
            await loop
        except asyncio.CancelledError:
            self._stop_event.set()
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in {name} loop")
            self._fail(e)

    async def _capture_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                frame = await asyncio.to_thread(self.source.read)
            except SourceUnavailable as e:
                if not self._stop_event.is_set():
                    self._fail(e)
                break

            self._frames_captured += 1
            self.slot.put(frame)

        logger.debug("Capture loop exited")

    async def _processing_loop(self) -> None:
        while not self._stop_event.is_set():
            await self.pacer.wait()
            if self._stop_event.is_set():
                break

            frame = self.slot.take()
            if frame is None:
                self._empty_ticks += 1
                continue

            try:
                payload = await asyncio.to_thread(self._render, frame)
            except MalformedFrame as e:
                self._malformed_frames += 1
                logger.warning(f"Rejected frame: {e}")
                continue

            try:
                if self._sink_size is None:
                    await asyncio.to_thread(
                        self.writer.sink.open, frame.width, frame.height, self.fps
                    )
                    self._sink_size = (frame.width, frame.height)
                    logger.info(
                        f"Sink opened at {frame.width}x{frame.height} @ {self.fps} fps "
                        f"({self.encoder.frame_size(frame.width, frame.height)} bytes per frame)"
                    )
                written = await asyncio.to_thread(self.writer.write, payload)
            except SinkUnavailable as e:
                self._fail(e)
                break

            if written:
                self._frames_processed += 1
                self._last_frame_id = frame.frame_id
                if self._frames_processed % self.log_every_n_frames == 0:
                    logger.info(
                        f"Processed {self._frames_processed} frames "
                        f"(captured={self._frames_captured}, "
                        f"dropped={self.slot.dropped_count}, "
                        f"late_ticks={self.pacer.late_ticks})"
                    )

        logger.debug("Processing loop exited")

    def _render(self, frame: Frame) -> bytes:
        if self._sink_size is not None and (frame.width, frame.height) != self._sink_size:
            raise MalformedFrame(
                f"Frame {frame.frame_id}: size {frame.width}x{frame.height} differs "
                f"from the negotiated {self._sink_size[0]}x{self._sink_size[1]}"
            )
        if self.transform is not None:
            self.transform.apply(frame)
        return self.encoder.encode(frame)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _fail(self, error: Exception) -> None:
        if self._error is None:
            self._error = f"{type(error).__name__}: {error}"
        logger.error(f"Pipeline failure: {error}")
        self._stop_event.set()

    async def _close(self) -> None:
        self.slot.clear()
        try:
            await asyncio.to_thread(self.source.close)
        except Exception as e:
            logger.warning(f"Error closing source: {e}")
        if self._sink_size is not None:
            try:
                await asyncio.to_thread(self.writer.sink.close)
            except Exception as e:
                logger.warning(f"Error closing sink: {e}")
            self._sink_size = None
