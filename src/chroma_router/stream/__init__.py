"""
Stream Module
=============

Frame capture, handoff, pacing and output components.

This module provides the streaming layer of the chroma router:
    - Frame: BGRA frame with stride-aware pixel view
    - FrameSlot: Latest-wins single-slot handoff
    - Pacer: Fixed-interval driver for the processing loop
    - CameraSource: OpenCV capture source
    - OutputEncoder: BGRA to sink pixel format
    - ProcessSink / FileSink: Raw frame consumers
    - SinkWriter: Retry-then-drop wrapper around a sink

Example:
    from chroma_router.stream import FrameSlot, Pacer

    slot = FrameSlot()
    pacer = Pacer(fps=25)

    while running:
        await pacer.wait()
        frame = slot.take()
        if frame is not None:
            process(frame)
"""

from chroma_router.stream.frame import Frame
from chroma_router.stream.buffer import FrameSlot
from chroma_router.stream.pacer import Pacer
from chroma_router.stream.source import CameraSource, FrameSource
from chroma_router.stream.encoder import OutputEncoder, load_background
from chroma_router.stream.sink import FileSink, FrameSink, ProcessSink, SinkWriter


__all__ = [
    "Frame",
    "FrameSlot",
    "Pacer",
    "FrameSource",
    "CameraSource",
    "OutputEncoder",
    "load_background",
    "FrameSink",
    "ProcessSink",
    "FileSink",
    "SinkWriter",
]
