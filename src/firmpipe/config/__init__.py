"""Configuration resolution for firmpipe."""

from .build_config import (
    BoardContext,
    BuildConfig,
    BuildContext,
    ConfigError,
    load_platform_descriptor,
    resolve,
)

__all__ = [
    "BoardContext",
    "BuildConfig",
    "BuildContext",
    "ConfigError",
    "load_platform_descriptor",
    "resolve",
]
