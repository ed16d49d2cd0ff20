"""
Compositor
==========

Turns per-pixel opacity into output pixel values.

Modes:
    - Full mask + substitute color: B, G, R and A blend toward the
      substitute; opacity 1 yields the substitute exactly
    - Full mask, no substitute: color unchanged, alpha scaled by (1 - o)
    - Alpha only: color always unchanged, alpha scaled by (1 - o)

Values are rounded half-to-even and clamped to [0, 255].
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from chroma_router.models.color import Color


logger = logging.getLogger(__name__)


def _to_bytes(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


class Compositor:
    """
    Applies opacity to BGRA pixels in place.

    Attributes:
        full_mask: Whether color channels may be rewritten
        substitute: Color to blend toward; None means true transparency

    Example:
        compositor = Compositor(full_mask=True, substitute=Color(255, 0, 255))
        compositor.apply(bgra, opacity)
    """

    def __init__(self, full_mask: bool = True, substitute: Optional[Color] = None) -> None:
        self.full_mask = full_mask
        self.substitute = substitute
        self._substitute_bgra = (
            np.array(substitute.to_bgra(), dtype=np.float64) if substitute else None
        )

    @property
    def recolors(self) -> bool:
        """True when color channels are blended toward the substitute."""
        return self.full_mask and self._substitute_bgra is not None

    def apply(self, bgra: np.ndarray, opacity: np.ndarray) -> None:
        """
        Composite in place.

        Args:
            bgra: Pixel array (..., 4), uint8, modified in place
            opacity: Opacity array (...), float in [0, 1]
        """
        if self.recolors:
            o = opacity[..., np.newaxis]
            sub = self._substitute_bgra
            blended = sub * o + bgra.astype(np.float64) * (1.0 - o)
            bgra[...] = np.where(o == 1.0, sub, _to_bytes(blended)).astype(np.uint8)
        else:
            alpha = bgra[..., 3].astype(np.float64) * (1.0 - opacity)
            bgra[..., 3] = _to_bytes(alpha)

    def composite_pixel(self, pixel: Sequence[int], opacity: float) -> Tuple[int, int, int, int]:
        """
        Composite a single BGRA pixel.

        Returns:
            New (B, G, R, A) tuple
        """
        arr = np.asarray(pixel, dtype=np.uint8).reshape(1, 4).copy()
        self.apply(arr, np.array([opacity], dtype=np.float64))
        return tuple(int(v) for v in arr[0])

    def __repr__(self) -> str:
        return f"Compositor(full_mask={self.full_mask}, substitute={self.substitute})"
