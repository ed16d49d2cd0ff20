"""
Keying Module
=============

Chroma-key classification and compositing.

Components:
    - falloff: Shared distance-to-opacity curve
    - Classifier: Protocol for opacity metrics, with six strategies
    - Compositor: Opacity-to-pixel rules
    - PixelTransform: Row-partitioned, in-place frame transform

Classifiers are selected from configuration by
``chroma_router.keying.factory``, which is imported separately because it
depends on the settings models.

Example:
    from chroma_router.keying import (
        Compositor, PixelTransform, YCbCrClassifier,
    )
    from chroma_router.models import Color, make_band

    classifier = YCbCrClassifier(Color(0, 255, 0), make_band(8, 96))
    transform = PixelTransform(classifier, Compositor(full_mask=False))
    transform.apply(frame)
"""

from chroma_router.keying.falloff import falloff
from chroma_router.keying.classifiers import (
    Channel,
    Classifier,
    HsvClassifier,
    HsvMode,
    LumaClassifier,
    MaxChannelClassifier,
    RedmeanClassifier,
    RgbClassifier,
    YCbCrClassifier,
)
from chroma_router.keying.compositor import Compositor
from chroma_router.keying.transform import PixelTransform, partition_rows


__all__ = [
    "falloff",
    "Channel",
    "HsvMode",
    "Classifier",
    "MaxChannelClassifier",
    "YCbCrClassifier",
    "RgbClassifier",
    "LumaClassifier",
    "RedmeanClassifier",
    "HsvClassifier",
    "Compositor",
    "PixelTransform",
    "partition_rows",
]
