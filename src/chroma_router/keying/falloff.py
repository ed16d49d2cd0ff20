"""
Opacity Falloff
===============

Shared distance-to-opacity curve used by the distance-based classifiers.

Given a normalised distance ``d = distance / max`` and ``r = min / max``:

    d < r   -> 1.0   (fully background)
    d > 1   -> 0.0   (fully foreground)
    else    -> 1 - d

With a ``mid`` knee the band is two linear segments instead:
1.0 at ``min``, 0.5 at ``mid``, 0.0 at ``max``.

Off bands and zero-width bands use ``r = 1``, which makes the curve a
binary cut at ``max``.
"""

import numpy as np

from chroma_router.models.threshold import Band, ThresholdBand


def falloff(distance: np.ndarray, max_distance: float, band: ThresholdBand) -> np.ndarray:
    """
    Map raw distances to opacity.

    Args:
        distance: Raw metric distances (any shape), non-negative
        max_distance: Distance corresponding to the band's ``max``, in the
            metric's own units
        band: Threshold band variant

    Returns:
        Opacity array in [0, 1], float64, same shape as ``distance``
    """
    distance = np.asarray(distance, dtype=np.float64)

    if max_distance <= 0:
        # Empty band: only an exact key match is background
        return np.where(distance <= 0, 1.0, 0.0)

    d = distance / max_distance

    if band.zero_width:
        return np.where(d < 1.0, 1.0, 0.0)

    r = band.ratio

    if isinstance(band, Band) and band.mid is not None:
        m = band.mid / band.max
        first = m - r
        second = 1.0 - m
        upper = 1.0 - 0.5 * (d - r) / first if first > 0 else np.full_like(d, 0.5)
        lower = 0.5 * (1.0 - d) / second if second > 0 else np.zeros_like(d)
        inside = np.where(d <= m, upper, lower)
    else:
        inside = 1.0 - d

    opacity = np.where(d < r, 1.0, np.where(d > 1.0, 0.0, inside))
    return np.clip(opacity, 0.0, 1.0)
