"""
Chroma Router Main Application
==============================

FastAPI entry point for the real-time chroma-key router.

The application lifespan builds the pipeline from settings and runs it as
a background task; the HTTP endpoints expose its state.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness check (is process alive?)
    GET  /ready     - Readiness check (is the pipeline streaming?)
    GET  /status    - Pipeline state, last error and counters
    GET  /metrics   - Detailed counters
"""

import asyncio
import logging
import os
import signal
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from chroma_router.config import Settings, settings
from chroma_router.errors import ConfigurationError
from chroma_router.keying.factory import create_transform
from chroma_router.models.status import PipelineState
from chroma_router.pipeline import Pipeline
from chroma_router.stream import (
    CameraSource,
    FileSink,
    FrameSink,
    OutputEncoder,
    ProcessSink,
    SinkWriter,
    load_background,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_pipeline: Optional[Pipeline] = None
_pipeline_task: Optional[asyncio.Task] = None
_startup_time: float = 0.0


def get_pipeline() -> Optional[Pipeline]:
    return _pipeline


# =============================================================================
# Signal Handlers
# =============================================================================

def _handle_sigterm(signum, frame):
    """Handle SIGTERM for graceful shutdown."""
    logger.info("Received SIGTERM, initiating graceful shutdown...")
    if _pipeline is not None:
        _pipeline.stop()


# =============================================================================
# Component Factories
# =============================================================================

def create_sink(config: Settings) -> FrameSink:
    """
    Create the sink selected by ``sink.kind``.

    Raises:
        ConfigurationError: If the kind is unknown or incomplete
    """
    kind = config.sink.kind

    if kind == "process":
        logger.info(f"Using ProcessSink: {' '.join(config.sink.command)}")
        return ProcessSink(
            command=config.sink.command,
            device_name=config.sink.device_name,
        )

    elif kind == "file":
        if not config.sink.path:
            raise ConfigurationError("sink.path is required for the file sink")
        logger.info(f"Using FileSink: {config.sink.path}")
        return FileSink(config.sink.path)

    else:
        raise ConfigurationError(f"Unknown sink kind: {kind}")


def create_encoder(config: Settings) -> OutputEncoder:
    """Create the output encoder, loading the background image if set."""
    background = None
    if config.output.background_image:
        background = load_background(config.output.background_image)

    return OutputEncoder(
        pixel_format=config.output.pixel_format,
        background=background,
        background_color=config.output.background_color,
    )


def build_pipeline(
    config: Settings,
    source=None,
    sink: Optional[FrameSink] = None,
) -> Pipeline:
    """
    Build a pipeline from settings.

    All configuration is validated here, before anything streams.

    Args:
        config: Loaded settings
        source: Override for the capture source (defaults to CameraSource)
        sink: Override for the sink (defaults to ``create_sink``)

    Raises:
        ConfigurationError: If any part of the configuration is invalid
    """
    transform = create_transform(config.keying)
    encoder = create_encoder(config)

    if source is None:
        source = CameraSource(
            device=config.source.device,
            width=config.source.width,
            height=config.source.height,
        )
    if sink is None:
        sink = create_sink(config)

    writer = SinkWriter(
        sink,
        retries=config.sink.write_retries,
        backoff_ms=config.sink.retry_backoff_ms,
        max_consecutive_failures=config.sink.max_consecutive_failures,
    )

    return Pipeline(
        source=source,
        writer=writer,
        encoder=encoder,
        transform=transform,
        fps=config.output.fps,
    )


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _pipeline, _pipeline_task, _startup_time

    signal.signal(signal.SIGTERM, _handle_sigterm)

    _startup_time = time.time()
    logger.info(f"Starting {settings.app.name} {settings.app.version}")

    _pipeline = build_pipeline(settings)
    _pipeline_task = asyncio.create_task(_pipeline.run(), name="pipeline")

    yield

    logger.info("Shutting down gracefully...")
    _pipeline.stop()

    try:
        await asyncio.wait_for(_pipeline_task, timeout=5.0)
    except asyncio.TimeoutError:
        logger.warning("Pipeline did not stop in time, cancelling")
        _pipeline_task.cancel()
        try:
            await _pipeline_task
        except asyncio.CancelledError:
            pass

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="ChromaRouter",
    description="Real-time chroma-key camera router",
    version=settings.app.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "ChromaRouter",
        "version": settings.app.version,
        "name": settings.app.name,
        "classifier": settings.keying.classifier,
        "keying_enabled": settings.keying.enabled,
        "fps": settings.output.fps,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness check - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness check - is the pipeline streaming?

    Returns 200 while streaming, 503 otherwise (not started, stopped,
    or failed).
    """
    pipeline = get_pipeline()

    if pipeline is not None and pipeline.state is PipelineState.STREAMING:
        return JSONResponse({"status": "ready", "state": pipeline.state.value})

    return JSONResponse(
        {
            "status": "not_ready",
            "state": pipeline.state.value if pipeline else None,
            "error": pipeline.error if pipeline else None,
        },
        status_code=503,
    )


@app.get("/status")
async def status() -> JSONResponse:
    """Pipeline state, last error and counters."""
    pipeline = get_pipeline()

    if pipeline is None:
        return JSONResponse(
            {"error": "Pipeline not initialized"},
            status_code=503,
        )

    return JSONResponse(pipeline.status().model_dump(mode="json"))


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    pipeline = get_pipeline()

    pipeline_metrics = {}
    if pipeline is not None:
        pipeline_metrics = {
            **pipeline.status().model_dump(mode="json"),
            "slot": pipeline.slot.metrics(),
            "pacer_ticks": pipeline.pacer.ticks,
            "late_ticks": pipeline.pacer.late_ticks,
            "last_frame_id": pipeline.last_frame_id,
        }

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "classifier": settings.keying.classifier,
        **pipeline_metrics,
    })


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "chroma_router.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
