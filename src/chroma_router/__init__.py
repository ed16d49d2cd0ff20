"""
Chroma Router
=============

Real-time chroma-key router from a camera to a virtual camera sink.

Frames are captured, keyed against a configurable background color with
one of six color metrics, composited to transparency or a substitute
color, flattened over a background and written as a raw pixel stream at
a fixed frame rate.

Components:
    - keying: Classifiers, compositor and the parallel pixel transform
    - stream: Frame model, latest-wins slot, pacer, sources and sinks
    - pipeline: Capture/processing state machine
    - config: YAML + environment configuration

Example:
    from chroma_router.config import settings
    from chroma_router.main import build_pipeline

    pipeline = build_pipeline(settings)
    status = asyncio.run(pipeline.run())
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
