"""
Color Models
============

Color value objects and color-space conversions used by the classifiers.

Pixel buffers are packed BGRA (B, G, R, A), one byte per channel. Colors
on the configuration surface are given as RGB[A] sequences.

Conversions:
    - BT.601 chroma pair (Cb, Cr)
    - HSV with H in degrees [0, 360), S in [0, 1], V in [0, 255]
    - Luma: 0.11*B + 0.59*G + 0.30*R

All conversion helpers accept scalars or numpy arrays and return float64.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from chroma_router.errors import ConfigurationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Color:
    """
    Immutable RGBA color.

    Attributes:
        r: Red channel (0-255)
        g: Green channel (0-255)
        b: Blue channel (0-255)
        a: Alpha channel (0-255), opaque by default
    """

    r: int
    g: int
    b: int
    a: int = 255

    def __post_init__(self) -> None:
        for name in ("r", "g", "b", "a"):
            value = getattr(self, name)
            if not isinstance(value, (int, np.integer)) or not 0 <= value <= 255:
                raise ConfigurationError(
                    f"Color channel {name} must be an integer in 0..255, got {value!r}"
                )

    @classmethod
    def from_sequence(cls, values: Sequence[int]) -> "Color":
        """
        Build a color from an RGB or RGBA sequence.

        Raises:
            ConfigurationError: If the sequence is not 3 or 4 channels long
        """
        values = tuple(values)
        if len(values) not in (3, 4):
            raise ConfigurationError(
                f"Color must have 3 (RGB) or 4 (RGBA) channels, got {len(values)}"
            )
        return cls(*(int(v) for v in values))

    def to_bgra(self) -> Tuple[int, int, int, int]:
        """Channel tuple in buffer order."""
        return (self.b, self.g, self.r, self.a)


def rgb_to_cbcr(r, g, b) -> Tuple[np.ndarray, np.ndarray]:
    """BT.601 full-range chroma pair. Luma is not needed for distance."""
    r = np.asarray(r, dtype=np.float64)
    g = np.asarray(g, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    cb = 128.0 - 0.168736 * r - 0.331264 * g + 0.5 * b
    cr = 128.0 + 0.5 * r - 0.418688 * g - 0.081312 * b
    return cb, cr


def rgb_to_luma(r, g, b) -> np.ndarray:
    """Grayscale luma with the classic 0.30/0.59/0.11 weights."""
    r = np.asarray(r, dtype=np.float64)
    g = np.asarray(g, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    return 0.11 * b + 0.59 * g + 0.30 * r


def rgb_to_hsv(r, g, b) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Convert RGB to HSV.

    Returns:
        Tuple (h, s, v): hue in degrees [0, 360), saturation in [0, 1],
        value in [0, 255]. Achromatic pixels get hue 0.
    """
    r = np.asarray(r, dtype=np.float64)
    g = np.asarray(g, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)

    mx = np.maximum(np.maximum(r, g), b)
    mn = np.minimum(np.minimum(r, g), b)
    delta = mx - mn

    v = mx
    s = np.divide(delta, mx, out=np.zeros_like(mx), where=mx > 0)

    # Avoid division by zero for grays; their hue is forced to 0 below
    safe_delta = np.where(delta > 0, delta, 1.0)
    h_r = np.mod((g - b) / safe_delta, 6.0)
    h_g = (b - r) / safe_delta + 2.0
    h_b = (r - g) / safe_delta + 4.0

    h = np.where(mx == r, h_r, np.where(mx == g, h_g, h_b)) * 60.0
    h = np.where(delta > 0, h, 0.0)
    h = np.mod(h, 360.0)

    return h, s, v


class KeyColor:
    """
    Reference color to be keyed out, with cached derived representations.

    The Cb/Cr pair, HSV triple and luma are recomputed every time the
    color is assigned, and are swapped in together with the color itself,
    so readers never observe a derived value from an older key.

    Example:
        key = KeyColor(Color(0, 255, 0))
        key.cbcr        # (cb, cr) of pure green
        key.color = Color(0, 0, 255)
        key.hsv         # now the HSV of pure blue
    """

    def __init__(self, color: Color) -> None:
        self._state: Tuple[Color, Tuple[float, float], Tuple[float, float, float], float]
        self.color = color

    @property
    def color(self) -> Color:
        return self._state[0]

    @color.setter
    def color(self, color: Color) -> None:
        cb, cr = rgb_to_cbcr(color.r, color.g, color.b)
        h, s, v = rgb_to_hsv(color.r, color.g, color.b)
        luma = rgb_to_luma(color.r, color.g, color.b)

        # Single assignment keeps color and derived values coherent
        self._state = (
            color,
            (float(cb), float(cr)),
            (float(h), float(s), float(v)),
            float(luma),
        )
        logger.debug(f"Key color set to {color}")

    @property
    def cbcr(self) -> Tuple[float, float]:
        """BT.601 (Cb, Cr) of the key."""
        return self._state[1]

    @property
    def hsv(self) -> Tuple[float, float, float]:
        """(H, S, V) of the key."""
        return self._state[2]

    @property
    def luma(self) -> float:
        """Luma of the key."""
        return self._state[3]

    def __repr__(self) -> str:
        return f"KeyColor({self.color})"
