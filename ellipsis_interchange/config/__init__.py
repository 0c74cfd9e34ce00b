"""Configuration loading and validation."""

from .models import (
    InterchangeConfig,
    ImageConfig,
    RemoteFetchConfig,
    CardConfig,
    DefaultsConfig,
    PathsConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "InterchangeConfig",
    "ImageConfig",
    "RemoteFetchConfig",
    "CardConfig",
    "DefaultsConfig",
    "PathsConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
