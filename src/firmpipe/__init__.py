"""firmpipe - firmware build pipeline for the AVR toolchain."""

from .config import BoardContext, BuildConfig, BuildContext, resolve
from .build import BuildPipeline, BuildResult, StdioMode
from .deploy import Deployer, FlashResult
from .errors import (
    ArchiveError,
    CompileError,
    ConfigError,
    ConvertError,
    FirmpipeError,
    FlashError,
    LinkError,
)
from .progress import BuildEvent, EventKind, ProgressCallback

__version__ = "0.1.0"

__all__ = [
    "ArchiveError",
    "BoardContext",
    "BuildConfig",
    "BuildContext",
    "BuildEvent",
    "BuildPipeline",
    "BuildResult",
    "CompileError",
    "ConfigError",
    "ConvertError",
    "Deployer",
    "EventKind",
    "FirmpipeError",
    "FlashError",
    "FlashResult",
    "LinkError",
    "ProgressCallback",
    "StdioMode",
    "resolve",
]
