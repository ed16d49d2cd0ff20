"""
Keying Factory
==============

Builds the classifier, compositor and transform from configuration.

All validation happens here, before streaming starts; a bad band, an
unknown variant or a malformed color raises ConfigurationError.
"""

import logging
from typing import Optional

from chroma_router.config import KeyingConfig
from chroma_router.errors import ConfigurationError
from chroma_router.keying.classifiers import (
    Classifier,
    HsvClassifier,
    LumaClassifier,
    MaxChannelClassifier,
    RedmeanClassifier,
    RgbClassifier,
    YCbCrClassifier,
)
from chroma_router.keying.compositor import Compositor
from chroma_router.keying.transform import PixelTransform
from chroma_router.models.color import Color
from chroma_router.models.threshold import make_band


logger = logging.getLogger(__name__)


CLASSIFIER_VARIANTS = (
    "max_channel",
    "max_channel_alpha",
    "ycbcr",
    "rgb",
    "luma",
    "redmean",
    "hsv",
)

_DISTANCE_CLASSIFIERS = {
    "ycbcr": YCbCrClassifier,
    "rgb": RgbClassifier,
    "luma": LumaClassifier,
    "redmean": RedmeanClassifier,
}


def create_classifier(config: KeyingConfig) -> Classifier:
    """
    Create the classifier selected by ``config.classifier``.

    Raises:
        ConfigurationError: If the variant is unknown or parameters invalid
    """
    variant = config.classifier
    band = make_band(config.min_threshold, config.max_threshold, config.mid_threshold)

    if variant in ("max_channel", "max_channel_alpha"):
        classifier: Classifier = MaxChannelClassifier(
            band=band,
            channel=config.channel,
            velocity=config.velocity,
            alpha_only=variant == "max_channel_alpha",
        )
    elif variant == "hsv":
        classifier = HsvClassifier(
            Color.from_sequence(config.key_color), band, mode=config.hsv_mode
        )
    elif variant in _DISTANCE_CLASSIFIERS:
        classifier = _DISTANCE_CLASSIFIERS[variant](Color.from_sequence(config.key_color), band)
    else:
        raise ConfigurationError(
            f"Unknown classifier variant: {variant} "
            f"(expected one of {', '.join(CLASSIFIER_VARIANTS)})"
        )

    logger.info(f"Using {classifier!r}")
    return classifier


def create_compositor(config: KeyingConfig) -> Compositor:
    """
    Create the compositor for the configured mask mode.

    The alpha-only max-channel variant never recolors, whatever
    ``full_mask`` says.
    """
    full_mask = config.full_mask and config.classifier != "max_channel_alpha"
    substitute = (
        Color.from_sequence(config.substitute_color)
        if config.substitute_color is not None
        else None
    )
    return Compositor(full_mask=full_mask, substitute=substitute)


def create_transform(config: KeyingConfig) -> Optional[PixelTransform]:
    """
    Create the pixel transform, or None when keying is disabled.

    The classifier and compositor are built (and validated) either way.
    """
    classifier = create_classifier(config)
    compositor = create_compositor(config)

    if not config.enabled:
        logger.info("Chroma key disabled, frames pass through unchanged")
        return None

    return PixelTransform(classifier, compositor, workers=config.workers)
