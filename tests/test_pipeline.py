"""
Pipeline Tests
==============

End-to-end behavior of capture, latest-wins handoff, pacing and output.
"""

import asyncio
import queue
import threading
import time

import pytest

from chroma_router.config import KeyingConfig
from chroma_router.errors import SourceUnavailable
from chroma_router.keying.factory import create_transform
from chroma_router.models.status import PipelineState
from chroma_router.pipeline import Pipeline
from chroma_router.stream.encoder import OutputEncoder
from chroma_router.stream.frame import Frame
from chroma_router.stream.sink import SinkWriter

from conftest import ListSource, RecordingSink, solid_frame, tagged_frame


class QueueSource:
    """Source fed one frame at a time by the test; None ends the stream."""

    def __init__(self) -> None:
        self.frames: "queue.Queue" = queue.Queue()
        self.closed = False

    def push(self, frame) -> None:
        self.frames.put(frame)

    def open(self) -> None:
        pass

    def read(self) -> Frame:
        try:
            frame = self.frames.get(timeout=5.0)
        except queue.Empty:
            raise SourceUnavailable("no frame within 5s")
        if frame is None:
            raise SourceUnavailable("stream ended")
        return frame

    def close(self) -> None:
        self.closed = True


class GatedSink(RecordingSink):
    """Sink whose first write blocks until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.gate = threading.Event()

    def write(self, payload: bytes) -> None:
        self.entered.set()
        self.gate.wait(timeout=5.0)
        super().write(payload)


class ManualPacer:
    """Pacer that only ticks when the test says so."""

    def __init__(self) -> None:
        self.late_ticks = 0
        self.ticks = 0
        self._tokens = asyncio.Semaphore(0)

    def tick(self) -> None:
        self._tokens.release()

    async def wait(self) -> None:
        await self._tokens.acquire()
        self.ticks += 1


async def wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def make_pipeline(source, sink, transform=None, pacer=None, fps=100, **writer_options):
    writer_options.setdefault("retries", 0)
    writer_options.setdefault("sleep", lambda seconds: None)
    return Pipeline(
        source=source,
        writer=SinkWriter(sink, **writer_options),
        encoder=OutputEncoder("bgra"),
        transform=transform,
        fps=fps,
        pacer=pacer,
    )


def first_byte_ids(sink):
    return [payload[0] for payload in sink.payloads]


class TestLatestWins:
    """Frames are dropped, never queued."""

    def test_only_newest_frame_reaches_sink(self):
        async def scenario():
            source = QueueSource()
            sink = RecordingSink()
            pacer = ManualPacer()
            pipeline = make_pipeline(source, sink, pacer=pacer)
            task = asyncio.create_task(pipeline.run())

            for frame_id in (1, 2, 3):
                source.push(tagged_frame(frame_id))
            await wait_until(lambda: pipeline.slot.total_put == 3)

            pacer.tick()
            await wait_until(lambda: len(sink.payloads) == 1)

            pipeline.stop()
            source.push(None)
            pacer.tick()
            return await task, sink

        status, sink = asyncio.run(scenario())

        assert first_byte_ids(sink) == [3]
        assert status.frames_dropped == 2
        assert status.frames_processed == 1
        assert status.state is PipelineState.STOPPED
        assert status.error is None

    def test_slow_sink_keeps_order(self):
        async def scenario():
            source = ListSource([tagged_frame(i) for i in range(1, 31)], interval=0.005)
            sink = RecordingSink(delay=0.03)
            pipeline = make_pipeline(source, sink, fps=100)
            task = asyncio.create_task(pipeline.run())

            await wait_until(lambda: source.delivered == 30)
            await asyncio.sleep(0.1)

            pipeline.stop()
            source.released.set()
            return await task, sink

        status, sink = asyncio.run(scenario())
        ids = first_byte_ids(sink)

        assert ids == sorted(set(ids))
        assert 0 < len(ids) < 30
        assert status.frames_captured == 30
        assert status.frames_dropped > 0
        assert status.frames_processed + status.frames_dropped in (29, 30)

    def test_blocked_write_then_newest_frame(self):
        async def scenario():
            source = QueueSource()
            sink = GatedSink()
            pacer = ManualPacer()
            pipeline = make_pipeline(source, sink, pacer=pacer)
            task = asyncio.create_task(pipeline.run())

            source.push(tagged_frame(1))
            await wait_until(lambda: pipeline.slot.total_put == 1)
            pacer.tick()
            await wait_until(sink.entered.is_set)

            # Capture keeps running while the sink is stuck
            for frame_id in (2, 3, 4):
                source.push(tagged_frame(frame_id))
            await wait_until(lambda: pipeline.slot.total_put == 4)
            pacer.tick()
            pacer.tick()

            sink.gate.set()
            await wait_until(lambda: len(sink.payloads) == 2)

            pipeline.stop()
            source.push(None)
            pacer.tick()
            return await task, sink

        status, sink = asyncio.run(scenario())

        assert first_byte_ids(sink) == [1, 4]
        assert status.frames_dropped == 2
        assert status.error is None

    def test_empty_ticks_counted(self):
        async def scenario():
            source = QueueSource()
            sink = RecordingSink()
            pacer = ManualPacer()
            pipeline = make_pipeline(source, sink, pacer=pacer)
            task = asyncio.create_task(pipeline.run())

            pacer.tick()
            pacer.tick()
            await wait_until(lambda: pacer.ticks == 2)
            await wait_until(lambda: pipeline.status().empty_ticks == 2)

            pipeline.stop()
            source.push(None)
            pacer.tick()
            return await task, sink

        status, sink = asyncio.run(scenario())

        assert status.empty_ticks == 2
        assert sink.payloads == []
        assert sink.opened_with is None


class TestKeyingOutput:
    """Frames are keyed and encoded on their way to the sink."""

    def test_green_frame_becomes_magenta(self):
        config = KeyingConfig(
            classifier="ycbcr",
            key_color=[0, 255, 0],
            min_threshold=8,
            max_threshold=96,
            substitute_color=[255, 0, 255],
            workers=2,
        )

        async def scenario():
            source = QueueSource()
            sink = RecordingSink()
            pacer = ManualPacer()
            pipeline = make_pipeline(
                source, sink, transform=create_transform(config), pacer=pacer, fps=30
            )
            task = asyncio.create_task(pipeline.run())

            source.push(solid_frame((0, 255, 0, 255), width=2, height=2, frame_id=1))
            await wait_until(lambda: pipeline.slot.total_put == 1)
            pacer.tick()
            await wait_until(lambda: len(sink.payloads) == 1)

            pipeline.stop()
            source.push(None)
            pacer.tick()
            return await task, sink

        status, sink = asyncio.run(scenario())

        assert sink.payloads == [bytes((255, 0, 255, 255)) * 4]
        assert sink.opened_with == (2, 2, 30)
        assert sink.closed
        assert status.frames_processed == 1

    def test_passthrough_without_transform(self):
        async def scenario():
            source = QueueSource()
            sink = RecordingSink()
            pacer = ManualPacer()
            pipeline = make_pipeline(source, sink, pacer=pacer)
            task = asyncio.create_task(pipeline.run())

            source.push(solid_frame((0, 255, 0, 255), width=2, height=2, frame_id=1))
            await wait_until(lambda: pipeline.slot.total_put == 1)
            pacer.tick()
            await wait_until(lambda: len(sink.payloads) == 1)

            pipeline.stop()
            source.push(None)
            pacer.tick()
            return await task, sink

        _, sink = asyncio.run(scenario())

        assert sink.payloads == [bytes((0, 255, 0, 255)) * 4]

    def test_malformed_frame_skipped(self):
        async def scenario():
            source = QueueSource()
            sink = RecordingSink()
            pacer = ManualPacer()
            pipeline = make_pipeline(source, sink, pacer=pacer)
            task = asyncio.create_task(pipeline.run())

            source.push(tagged_frame(1))
            await wait_until(lambda: pipeline.slot.total_put == 1)
            pacer.tick()
            await wait_until(lambda: len(sink.payloads) == 1)

            source.push(Frame(width=4, height=2, stride=16, data=bytes(5), frame_id=2))
            await wait_until(lambda: pipeline.slot.total_put == 2)
            pacer.tick()
            await wait_until(lambda: pipeline.status().malformed_frames == 1)

            source.push(tagged_frame(3))
            await wait_until(lambda: pipeline.slot.total_put == 3)
            pacer.tick()
            await wait_until(lambda: len(sink.payloads) == 2)

            pipeline.stop()
            source.push(None)
            pacer.tick()
            return await task, sink

        status, sink = asyncio.run(scenario())

        assert first_byte_ids(sink) == [1, 3]
        assert status.malformed_frames == 1
        assert status.error is None


    def test_size_change_rejected(self):
        async def scenario():
            source = QueueSource()
            sink = RecordingSink()
            pacer = ManualPacer()
            pipeline = make_pipeline(source, sink, pacer=pacer, fps=30)
            task = asyncio.create_task(pipeline.run())

            source.push(tagged_frame(1, width=2, height=2))
            await wait_until(lambda: pipeline.slot.total_put == 1)
            pacer.tick()
            await wait_until(lambda: len(sink.payloads) == 1)

            source.push(tagged_frame(2, width=4, height=4))
            await wait_until(lambda: pipeline.slot.total_put == 2)
            pacer.tick()
            await wait_until(lambda: pipeline.status().malformed_frames == 1)

            source.push(tagged_frame(3, width=2, height=2))
            await wait_until(lambda: pipeline.slot.total_put == 3)
            pacer.tick()
            await wait_until(lambda: len(sink.payloads) == 2)

            pipeline.stop()
            source.push(None)
            pacer.tick()
            return await task, sink

        status, sink = asyncio.run(scenario())

        assert sink.opened_with == (2, 2, 30)
        assert [len(payload) for payload in sink.payloads] == [16, 16]
        assert first_byte_ids(sink) == [1, 3]
        assert status.malformed_frames == 1
        assert status.error is None


class TestFailures:
    """Source and sink failures stop the pipeline with a recorded error."""

    def test_source_open_failure(self):
        source = ListSource([], fail_open=True)
        sink = RecordingSink()
        pipeline = make_pipeline(source, sink)

        status = asyncio.run(pipeline.run())

        assert status.state is PipelineState.STOPPED
        assert status.error.startswith("SourceUnavailable")
        assert sink.opened_with is None
        assert source.closed

    def test_source_read_failure(self):
        source = ListSource([tagged_frame(i) for i in range(3)], fail_after=3)
        sink = RecordingSink()
        pipeline = make_pipeline(source, sink)

        status = asyncio.run(pipeline.run())

        assert status.state is PipelineState.STOPPED
        assert "camera unplugged" in status.error
        assert status.frames_captured == 3
        assert source.closed

    def test_sink_unavailable(self):
        source = ListSource([tagged_frame(i) for i in range(100)], interval=0.01)
        sink = RecordingSink(fail=True)
        pipeline = make_pipeline(source, sink, max_consecutive_failures=2)

        status = asyncio.run(pipeline.run())

        assert status.state is PipelineState.STOPPED
        assert status.error.startswith("SinkUnavailable")
        assert status.sink_drops == 2
        assert status.frames_processed == 0
        assert sink.closed

    def test_cannot_run_twice(self):
        pipeline = make_pipeline(ListSource([], fail_open=True), RecordingSink())
        asyncio.run(pipeline.run())

        with pytest.raises(RuntimeError):
            asyncio.run(pipeline.run())


class TestLifecycle:
    """State machine transitions."""

    def test_idle_streaming_stopped(self):
        async def scenario():
            source = QueueSource()
            pacer = ManualPacer()
            pipeline = make_pipeline(source, RecordingSink(), pacer=pacer)
            states = [pipeline.state]

            task = asyncio.create_task(pipeline.run())
            await asyncio.sleep(0.01)
            states.append(pipeline.state)

            pipeline.stop()
            source.push(None)
            pacer.tick()
            status = await task
            states.append(status.state)
            return states, status

        states, status = asyncio.run(scenario())

        assert states == [PipelineState.IDLE, PipelineState.STREAMING, PipelineState.STOPPED]
        assert status.error is None

    def test_stop_is_idempotent(self):
        pipeline = make_pipeline(ListSource([]), RecordingSink())
        pipeline.stop()
        pipeline.stop()

        status = asyncio.run(pipeline.run())

        assert status.state is PipelineState.STOPPED
        assert status.error is None
