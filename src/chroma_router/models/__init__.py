"""
Data Models
===========

Value objects shared by the keying and streaming layers.

Models:
    Color:
        - Color: RGBA value object
        - KeyColor: Key color with cached derived representations

    Threshold:
        - Off, Band: Tagged threshold band variants
        - make_band: Band construction from optional config values

    Status:
        - PipelineState: IDLE / STREAMING / STOPPED
        - PipelineStatus: Observable pipeline snapshot
"""

from chroma_router.models.color import Color, KeyColor
from chroma_router.models.threshold import Band, Off, ThresholdBand, make_band
from chroma_router.models.status import PipelineState, PipelineStatus

__all__ = [
    # Color
    "Color",
    "KeyColor",
    # Threshold
    "Off",
    "Band",
    "ThresholdBand",
    "make_band",
    # Status
    "PipelineState",
    "PipelineStatus",
]
