"""
Pipeline Status Models
======================

Externally observable state of the keying pipeline.

States:
    IDLE -> STREAMING -> STOPPED

A pipeline that stops because of a source or sink failure records the
error here so callers can tell a clean stop from a failure.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PipelineState(str, Enum):
    """
    Lifecycle states of the pipeline.

    Attributes:
        IDLE: Built, not yet started
        STREAMING: Capture and processing loops running
        STOPPED: Both loops finished (cleanly or on error)
    """

    IDLE = "IDLE"
    STREAMING = "STREAMING"
    STOPPED = "STOPPED"


class PipelineStatus(BaseModel):
    """
    Snapshot of pipeline state and counters.

    Attributes:
        state: Current lifecycle state
        error: Description of the failure that stopped the pipeline
        frames_captured: Frames read from the source
        frames_processed: Frames written to the sink
        frames_dropped: Frames overwritten in the slot before processing
        empty_ticks: Pacer ticks that found no frame
        malformed_frames: Frames rejected for inconsistent geometry
        sink_drops: Frames dropped after sink retries were exhausted
    """

    state: PipelineState = Field(default=PipelineState.IDLE)
    error: Optional[str] = Field(default=None)
    frames_captured: int = Field(default=0, ge=0)
    frames_processed: int = Field(default=0, ge=0)
    frames_dropped: int = Field(default=0, ge=0)
    empty_ticks: int = Field(default=0, ge=0)
    malformed_frames: int = Field(default=0, ge=0)
    sink_drops: int = Field(default=0, ge=0)
