"""
Chroma Router Configuration
===========================

This module handles configuration loading for the chroma router.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    CHROMA_SOURCE_DEVICE    -> source.device
    CHROMA_CLASSIFIER       -> keying.classifier
    CHROMA_FPS              -> output.fps
    CHROMA_BACKGROUND_IMAGE -> output.background_image
    CHROMA_SINK_PATH        -> sink.path (switches sink.kind to "file")
    CHROMA_PORT             -> server.port
    CHROMA_LOG_LEVEL        -> logging.level
    PORT                    -> server.port

Example:
    from chroma_router.config import settings

    print(settings.keying.classifier)
    print(settings.output.fps)
"""

import os
import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from chroma_router.errors import ConfigurationError
from chroma_router.keying.classifiers import Channel, HsvMode


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

def _check_color(value: Optional[List[int]]) -> Optional[List[int]]:
    if value is None:
        return value
    if len(value) not in (3, 4):
        raise ValueError("color must have 3 (RGB) or 4 (RGBA) channels")
    if any(not 0 <= v <= 255 for v in value):
        raise ValueError("color channels must be in 0..255")
    return value


class AppConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="chroma-router", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class SourceConfig(BaseModel):
    """Capture device configuration."""

    device: Union[int, str] = Field(
        default=0,
        description="OpenCV capture device index, file path or stream URL",
    )
    width: int = Field(default=720, ge=1, description="Requested frame width")
    height: int = Field(default=480, ge=1, description="Requested frame height")


class KeyingConfig(BaseModel):
    """Chroma-key classifier and compositor configuration."""

    enabled: bool = Field(default=True, description="Apply the chroma key")
    classifier: str = Field(
        default="max_channel",
        description=(
            "Metric: max_channel, max_channel_alpha, ycbcr, rgb, luma, "
            "redmean or hsv"
        ),
    )
    key_color: List[int] = Field(
        default_factory=lambda: [0, 255, 0],
        description="Key color as RGB[A]",
    )
    min_threshold: Optional[int] = Field(
        default=None,
        ge=0,
        le=255,
        description="Start of the falloff band (None = no interpolation)",
    )
    mid_threshold: Optional[int] = Field(
        default=None,
        ge=0,
        le=255,
        description="Optional falloff knee where opacity crosses 0.5",
    )
    max_threshold: int = Field(
        default=96,
        ge=0,
        le=255,
        description="End of the falloff band",
    )
    channel: Channel = Field(
        default=Channel.GREEN,
        description="Designated channel (max-channel metrics only)",
    )
    velocity: int = Field(
        default=8,
        ge=0,
        description="Tolerance below the max channel (max-channel metrics only)",
    )
    full_mask: bool = Field(
        default=True,
        description="Allow color channels to be rewritten toward the substitute",
    )
    substitute_color: Optional[List[int]] = Field(
        default=None,
        description="Substitute color as RGB[A] (None = true transparency)",
    )
    hsv_mode: HsvMode = Field(
        default=HsvMode.SEMIFULL,
        description="HSV distance mode: semifull or full",
    )
    workers: int = Field(
        default=0,
        ge=0,
        description="Max worker threads per frame (0 = CPU count)",
    )

    @field_validator("key_color", "substitute_color")
    @classmethod
    def validate_colors(cls, value):
        return _check_color(value)

    @field_validator("channel", "hsv_mode", "classifier", mode="before")
    @classmethod
    def lowercase_names(cls, value):
        # Accept "Green", "FULL", "YCbCr" and the like
        return value.lower() if isinstance(value, str) else value


class OutputConfig(BaseModel):
    """Output pacing and pixel format configuration."""

    fps: int = Field(default=25, gt=0, description="Target output frame rate")
    pixel_format: str = Field(
        default="rgb24",
        description="Sink pixel format: rgb24 or bgra",
    )
    background_image: Optional[str] = Field(
        default=None,
        description="Image composited behind transparent pixels (rgb24 only)",
    )
    background_color: List[int] = Field(
        default_factory=lambda: [0, 0, 0],
        description="Solid background as RGB when no image is configured",
    )

    @field_validator("background_color")
    @classmethod
    def validate_background(cls, value):
        return _check_color(value)


class SinkConfig(BaseModel):
    """Downstream sink configuration."""

    kind: str = Field(
        default="process",
        description="Sink type: 'process' (stdin of a command) or 'file'",
    )
    device_name: str = Field(
        default="VirtualCamera0",
        description="Virtual camera name passed to the command template",
    )
    command: List[str] = Field(
        default_factory=lambda: [
            "AkVCamManager", "stream", "--fps", "{fps}", "{name}",
            "RGB24", "{width}", "{height}",
        ],
        description="Command template for the process sink",
    )
    path: Optional[str] = Field(
        default=None,
        description="Output path for the file sink ('-' = stdout)",
    )
    write_retries: int = Field(
        default=3,
        ge=0,
        description="Retries for a failed write before the frame is dropped",
    )
    retry_backoff_ms: int = Field(
        default=20,
        ge=0,
        description="Initial backoff between retries (doubles each attempt)",
    )
    max_consecutive_failures: int = Field(
        default=50,
        ge=1,
        description="Consecutive dropped frames before the sink is declared unavailable",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the chroma router.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    keying: KeyingConfig = Field(default_factory=KeyingConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration

    Raises:
        ConfigurationError: If the merged configuration is invalid
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    try:
        _apply_env_overrides(config_data)
    except ValueError as e:
        raise ConfigurationError(f"Invalid environment override: {e}") from e

    # Build settings object
    try:
        return Settings.model_validate(config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Source settings
    if env_device := os.environ.get("CHROMA_SOURCE_DEVICE"):
        device: Union[int, str] = int(env_device) if env_device.isdigit() else env_device
        config_data.setdefault("source", {})["device"] = device

    # Keying settings
    if env_classifier := os.environ.get("CHROMA_CLASSIFIER"):
        config_data.setdefault("keying", {})["classifier"] = env_classifier

    # Output settings
    if env_fps := os.environ.get("CHROMA_FPS"):
        config_data.setdefault("output", {})["fps"] = int(env_fps)
    if env_bg := os.environ.get("CHROMA_BACKGROUND_IMAGE"):
        config_data.setdefault("output", {})["background_image"] = env_bg

    # Sink settings
    if env_sink := os.environ.get("CHROMA_SINK_PATH"):
        sink = config_data.setdefault("sink", {})
        sink["kind"] = "file"
        sink["path"] = env_sink

    # Server settings
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("CHROMA_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("CHROMA_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
