"""
Compositor Tests
================

Opacity-to-pixel rules for the three mask modes.
"""

import numpy as np
import pytest

from chroma_router.config import KeyingConfig
from chroma_router.keying.compositor import Compositor
from chroma_router.keying.factory import create_compositor, create_transform
from chroma_router.models.color import Color

from conftest import solid_frame


MAGENTA = Color(255, 0, 255)


class TestAlphaOnly:
    """Tests for compositing without color rewrites."""

    def test_zero_opacity_leaves_pixel_untouched(self):
        compositor = Compositor(full_mask=False)
        assert compositor.composite_pixel((10, 20, 30, 200), 0.0) == (10, 20, 30, 200)

    def test_alpha_scaled(self):
        compositor = Compositor(full_mask=False)
        assert compositor.composite_pixel((10, 20, 30, 200), 0.25) == (10, 20, 30, 150)

    def test_substitute_ignored(self):
        compositor = Compositor(full_mask=False, substitute=MAGENTA)
        assert not compositor.recolors
        assert compositor.composite_pixel((10, 20, 30, 255), 1.0) == (10, 20, 30, 0)

    def test_color_channels_never_change(self, random_pixels):
        compositor = Compositor(full_mask=False)
        original = random_pixels.copy()
        opacity = np.linspace(0, 1, random_pixels.shape[0] * random_pixels.shape[1])
        compositor.apply(random_pixels, opacity.reshape(random_pixels.shape[:2]))

        np.testing.assert_array_equal(random_pixels[..., :3], original[..., :3])
        assert np.all(random_pixels[..., 3] <= original[..., 3])


class TestFullMask:
    """Tests for compositing with color rewrites."""

    def test_full_opacity_yields_substitute(self):
        compositor = Compositor(full_mask=True, substitute=MAGENTA)
        assert compositor.composite_pixel((0, 255, 0, 255), 1.0) == MAGENTA.to_bgra()

    def test_zero_opacity_leaves_pixel_untouched(self):
        compositor = Compositor(full_mask=True, substitute=MAGENTA)
        assert compositor.composite_pixel((1, 2, 3, 4), 0.0) == (1, 2, 3, 4)

    def test_blend_toward_substitute(self):
        compositor = Compositor(full_mask=True, substitute=Color(200, 100, 50))
        assert compositor.composite_pixel((0, 0, 0, 255), 0.5) == (25, 50, 100, 255)

    def test_rounds_half_to_even(self):
        compositor = Compositor(full_mask=True, substitute=Color(0, 0, 0, 0))
        # 255 * 0.5 = 127.5 rounds to 128; 5 * 0.5 = 2.5 rounds to 2
        assert compositor.composite_pixel((5, 5, 5, 255), 0.5) == (2, 2, 2, 128)

    def test_without_substitute_scales_alpha(self):
        compositor = Compositor(full_mask=True)
        assert not compositor.recolors
        assert compositor.composite_pixel((10, 20, 30, 200), 0.25) == (10, 20, 30, 150)

    def test_substitute_alpha_used(self):
        compositor = Compositor(full_mask=True, substitute=Color(255, 0, 255, 0))
        assert compositor.composite_pixel((0, 255, 0, 255), 1.0) == (255, 0, 255, 0)


class TestCompositorFactory:
    """Tests for building compositors from configuration."""

    def test_substitute_from_config(self):
        compositor = create_compositor(KeyingConfig(substitute_color=[255, 0, 255]))
        assert compositor.recolors
        assert compositor.substitute == MAGENTA

    def test_alpha_only_from_config(self):
        compositor = create_compositor(
            KeyingConfig(full_mask=False, substitute_color=[255, 0, 255])
        )
        assert not compositor.recolors

    def test_max_channel_alpha_never_recolors(self):
        config = KeyingConfig(
            classifier="max_channel_alpha",
            min_threshold=8,
            max_threshold=96,
            substitute_color=[255, 0, 255],
        )
        assert not create_compositor(config).recolors

        frame = solid_frame((0, 255, 0, 255), width=2, height=2)
        create_transform(config).apply(frame)

        np.testing.assert_array_equal(frame.pixels()[..., :3], np.full((2, 2, 3), (0, 255, 0)))
        assert (frame.pixels()[..., 3] == 0).all()

    def test_max_channel_recolors_with_substitute(self):
        config = KeyingConfig(
            classifier="max_channel",
            min_threshold=8,
            max_threshold=96,
            substitute_color=[255, 0, 255],
        )
        frame = solid_frame((0, 255, 0, 255), width=2, height=2)
        create_transform(config).apply(frame)

        assert tuple(frame.pixels()[0, 0]) == (255, 0, 255, 255)

    @pytest.mark.parametrize("opacity", [0.0, 0.3, 0.7, 1.0])
    def test_output_stays_in_range(self, opacity):
        compositor = Compositor(full_mask=True, substitute=Color(255, 255, 255))
        pixel = compositor.composite_pixel((250, 250, 250, 250), opacity)
        assert all(0 <= v <= 255 for v in pixel)
