"""
Threshold Bands
===============

Tagged variant describing how a classifier turns distance into opacity.

Variants:
    - Off: no interpolation band, binary cut at ``max``
    - Band: linear falloff between ``min`` and ``max``, with an optional
      ``mid`` knee

Invariants (checked at construction, never at pixel time):
    0 <= min <= (mid <=) max <= 255

Example:
    band = make_band(min_threshold=8, max_threshold=96)
    off = make_band(min_threshold=None, max_threshold=96)
"""

from dataclasses import dataclass
from typing import Optional, Union

from chroma_router.errors import ConfigurationError


THRESHOLD_MIN = 0
THRESHOLD_MAX = 255


def _check_range(name: str, value: int) -> None:
    if not THRESHOLD_MIN <= value <= THRESHOLD_MAX:
        raise ConfigurationError(
            f"{name} must be in {THRESHOLD_MIN}..{THRESHOLD_MAX}, got {value}"
        )


@dataclass(frozen=True, slots=True)
class Off:
    """No interpolation band: opacity is binary around ``max``."""

    max: int

    def __post_init__(self) -> None:
        _check_range("max_threshold", self.max)

    @property
    def ratio(self) -> float:
        return 1.0

    @property
    def zero_width(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Band:
    """
    Interpolation band.

    Attributes:
        min: Lower edge; distances below it are fully background
        max: Upper edge; distances above it are fully foreground
        mid: Optional knee where opacity crosses 0.5
    """

    min: int
    max: int
    mid: Optional[int] = None

    def __post_init__(self) -> None:
        _check_range("min_threshold", self.min)
        _check_range("max_threshold", self.max)
        if self.min > self.max:
            raise ConfigurationError(
                f"min_threshold ({self.min}) must not exceed max_threshold ({self.max})"
            )
        if self.mid is not None:
            _check_range("mid_threshold", self.mid)
            if not self.min <= self.mid <= self.max:
                raise ConfigurationError(
                    f"mid_threshold ({self.mid}) must lie within "
                    f"[{self.min}, {self.max}]"
                )

    @property
    def ratio(self) -> float:
        """min/max; a zero-width or empty band behaves as binary."""
        if self.max == 0:
            return 1.0
        return self.min / self.max

    @property
    def zero_width(self) -> bool:
        return self.min == self.max


ThresholdBand = Union[Off, Band]


def make_band(
    min_threshold: Optional[int],
    max_threshold: int,
    mid_threshold: Optional[int] = None,
) -> ThresholdBand:
    """
    Build a band from the optional configuration values.

    A missing ``min_threshold`` means no interpolation (Off). A ``mid``
    without a ``min`` is rejected since it has nothing to interpolate.

    Raises:
        ConfigurationError: If ordering or range invariants are violated
    """
    if min_threshold is None:
        if mid_threshold is not None:
            raise ConfigurationError("mid_threshold requires min_threshold")
        return Off(max=max_threshold)
    return Band(min=min_threshold, max=max_threshold, mid=mid_threshold)
