"""
Chroma-Key Classifiers
======================

Per-pixel metrics mapping a BGRA pixel to an opacity in [0, 1].

Opacity is the degree of background-ness: 1.0 means the pixel is keyed
out entirely, 0.0 means it is left untouched.

Variants:
    - MaxChannelClassifier: channel-dominance heuristic (two sub-variants)
    - YCbCrClassifier: BT.601 chroma-plane distance
    - RgbClassifier: Euclidean distance in RGB space
    - LumaClassifier: grayscale luma difference
    - RedmeanClassifier: weighted "redmean" perceptual distance
    - HsvClassifier: hue-based distance (semifull / full)

Every classifier works on whole frames (``opacity_map``) using numpy;
``opacity`` is the single-pixel case of the same computation. Results
depend only on each pixel's own bytes, so any partition of a frame
produces identical output.
"""

import logging
from enum import Enum
from typing import Protocol, Sequence

import numpy as np

from chroma_router.errors import ConfigurationError
from chroma_router.keying.falloff import falloff
from chroma_router.models.color import (
    Color,
    KeyColor,
    rgb_to_cbcr,
    rgb_to_hsv,
    rgb_to_luma,
)
from chroma_router.models.threshold import Band, ThresholdBand


logger = logging.getLogger(__name__)


# Largest possible Euclidean distance between two RGB colors: sqrt(3 * 255^2)
RGB_MAX_DISTANCE = 441.0

# Largest possible redmean distance (approximately 3 * 255)
REDMEAN_MAX_DISTANCE = 767.0


class Channel(str, Enum):
    """Channel examined by the max-channel heuristic."""

    RED = "red"
    GREEN = "green"
    BLUE = "blue"


class HsvMode(str, Enum):
    """
    HSV distance modes.

    Attributes:
        SEMIFULL: Hue delta only
        FULL: Hue, saturation and value deltas combined
    """

    SEMIFULL = "semifull"
    FULL = "full"


# Index of each channel in a BGRA pixel
_CHANNEL_INDEX = {
    Channel.BLUE: 0,
    Channel.GREEN: 1,
    Channel.RED: 2,
}


class Classifier(Protocol):
    """
    Protocol for opacity metrics.

    Implementations must be pure: the output for a pixel depends only on
    that pixel and on the classifier's configuration.
    """

    name: str

    def opacity_map(self, bgra: np.ndarray) -> np.ndarray:
        """
        Compute opacity for every pixel.

        Args:
            bgra: Pixel array (..., 4), uint8, BGRA channel order

        Returns:
            Opacity array (...), float64 in [0, 1]
        """
        ...

    def opacity(self, pixel: Sequence[int]) -> float:
        """Opacity of a single BGRA pixel."""
        ...


def _split_rgb(bgra: np.ndarray):
    """Return (r, g, b) float64 planes of a BGRA array."""
    b = bgra[..., 0].astype(np.float64)
    g = bgra[..., 1].astype(np.float64)
    r = bgra[..., 2].astype(np.float64)
    return r, g, b


class _BaseClassifier:
    """Shared single-pixel entry point."""

    name: str = "base"

    def opacity_map(self, bgra: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def opacity(self, pixel: Sequence[int]) -> float:
        """
        Opacity of a single pixel given in BGRA order.

        Args:
            pixel: (B, G, R, A) bytes

        Returns:
            Opacity in [0, 1]
        """
        arr = np.asarray(pixel, dtype=np.uint8).reshape(1, 1, 4)
        return float(self.opacity_map(arr)[0, 0])


class MaxChannelClassifier(_BaseClassifier):
    """
    Channel-dominance heuristic.

    A pixel qualifies when the designated channel is not the smallest of
    R, G, B and is either the largest or within ``velocity`` of the
    largest. Qualifying pixels use the spread ``max - min`` of their
    channels: a spread above ``max_threshold`` is fully background, a
    spread inside the band interpolates linearly from ``min_threshold``.
    Non-qualifying pixels are foreground.

    The heuristic ignores the key color beyond the channel choice.

    Two sub-variants share the opacity rule. ``alpha_only=False`` lets the
    compositor blend toward the substitute color; ``alpha_only=True`` never
    recolors and only scales alpha by ``1 - opacity`` (the factory builds
    an alpha-only compositor for it).

    The spread interpolation is linear; a ``mid`` knee is not supported.

    Attributes:
        band: Threshold band over the channel spread
        channel: Designated channel
        velocity: Tolerance below the maximum channel
        alpha_only: Alpha-only sub-variant; pixels are never recolored
    """

    def __init__(
        self,
        band: ThresholdBand,
        channel: Channel = Channel.GREEN,
        velocity: int = 8,
        alpha_only: bool = False,
    ) -> None:
        if isinstance(band, Band) and band.mid is not None:
            raise ConfigurationError(
                "mid_threshold is not supported by the max-channel classifier"
            )
        self.band = band
        self.channel = Channel(channel)
        self.velocity = velocity
        self.alpha_only = alpha_only
        self.name = "max_channel_alpha" if alpha_only else "max_channel"

        logger.info(
            f"MaxChannelClassifier initialized: channel={self.channel.value}, "
            f"velocity={velocity}, band={band}, alpha_only={alpha_only}"
        )

    def opacity_map(self, bgra: np.ndarray) -> np.ndarray:
        rgb = bgra[..., :3].astype(np.int16)
        mx = rgb.max(axis=-1)
        mn = rgb.min(axis=-1)
        c = rgb[..., _CHANNEL_INDEX[self.channel]]

        qualifies = (c != mn) & ((c == mx) | (mx - c < self.velocity))
        mm = mx - mn
        threshold = self.band.max

        keyed = qualifies & (mm > threshold)
        opacity = np.where(keyed, 1.0, 0.0)

        if isinstance(self.band, Band) and not self.band.zero_width:
            low = self.band.min
            partial = qualifies & ~keyed & (mm >= low)
            factor = (mm - low) / float(threshold - low)
            opacity = np.where(partial, factor, opacity)

        return np.clip(opacity, 0.0, 1.0)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(channel={self.channel.value}, "
            f"velocity={self.velocity}, band={self.band}, alpha_only={self.alpha_only})"
        )


class _DistanceClassifier(_BaseClassifier):
    """
    Base for metrics that compare each pixel against a key color.

    Subclasses provide ``distance`` (raw metric units) and
    ``max_distance`` (the raw distance that ``max_threshold`` stands for).
    """

    def __init__(self, key_color: Color, band: ThresholdBand) -> None:
        self._key = KeyColor(key_color)
        self.band = band

    @property
    def key_color(self) -> Color:
        return self._key.color

    @key_color.setter
    def key_color(self, color: Color) -> None:
        self._key.color = color

    @property
    def key(self) -> KeyColor:
        return self._key

    @property
    def max_distance(self) -> float:
        return float(self.band.max)

    def distance(self, bgra: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def opacity_map(self, bgra: np.ndarray) -> np.ndarray:
        return falloff(self.distance(bgra), self.max_distance, self.band)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key_color}, band={self.band})"


class YCbCrClassifier(_DistanceClassifier):
    """Euclidean distance between pixel and key in the BT.601 (Cb, Cr) plane."""

    name = "ycbcr"

    def distance(self, bgra: np.ndarray) -> np.ndarray:
        cb, cr = rgb_to_cbcr(*_split_rgb(bgra))
        key_cb, key_cr = self._key.cbcr
        return np.hypot(cb - key_cb, cr - key_cr)


class RgbClassifier(_DistanceClassifier):
    """Euclidean distance in full RGB space."""

    name = "rgb"

    @property
    def max_distance(self) -> float:
        return self.band.max / 255.0 * RGB_MAX_DISTANCE

    def distance(self, bgra: np.ndarray) -> np.ndarray:
        r, g, b = _split_rgb(bgra)
        key = self._key.color
        return np.sqrt((r - key.r) ** 2 + (g - key.g) ** 2 + (b - key.b) ** 2)


class LumaClassifier(_DistanceClassifier):
    """Absolute difference of grayscale luma."""

    name = "luma"

    def distance(self, bgra: np.ndarray) -> np.ndarray:
        return np.abs(rgb_to_luma(*_split_rgb(bgra)) - self._key.luma)


class RedmeanClassifier(_DistanceClassifier):
    """
    Weighted "redmean" color distance.

    Weights the red and blue terms by the mean red intensity of the two
    colors, which tracks perceived difference better than plain RGB.
    Squared terms are computed in int64.
    """

    name = "redmean"

    @property
    def max_distance(self) -> float:
        return self.band.max / 255.0 * REDMEAN_MAX_DISTANCE

    def distance(self, bgra: np.ndarray) -> np.ndarray:
        b = bgra[..., 0].astype(np.int64)
        g = bgra[..., 1].astype(np.int64)
        r = bgra[..., 2].astype(np.int64)
        key = self._key.color

        rmean = (r + key.r) // 2
        dr = r - key.r
        dg = g - key.g
        db = b - key.b

        total = (((512 + rmean) * dr * dr) >> 8) + 4 * dg * dg + (((767 - rmean) * db * db) >> 8)
        return np.sqrt(total.astype(np.float64))


class HsvClassifier(_DistanceClassifier):
    """
    Hue-based distance.

    ``semifull`` compares hue only; ``full`` combines hue, saturation and
    value deltas. Hue deltas wrap around the color wheel.
    """

    name = "hsv"

    def __init__(
        self,
        key_color: Color,
        band: ThresholdBand,
        mode: HsvMode = HsvMode.SEMIFULL,
    ) -> None:
        super().__init__(key_color, band)
        self.mode = HsvMode(mode)

    @property
    def max_distance(self) -> float:
        return self.band.max / 255.0

    def distance(self, bgra: np.ndarray) -> np.ndarray:
        h, s, v = rgb_to_hsv(*_split_rgb(bgra))
        key_h, key_s, key_v = self._key.hsv

        dh = np.abs(h - key_h)
        dh = np.minimum(dh, 360.0 - dh) / 180.0

        if self.mode is HsvMode.SEMIFULL:
            return dh

        ds = s - key_s
        dv = (v - key_v) / 255.0
        return np.sqrt(dh ** 2 + ds ** 2 + dv ** 2)
