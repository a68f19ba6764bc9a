"""
Build configuration resolver.

This module loads the platform descriptor (``<platform>/context.json``) and
merges it with the per-invocation build context into one immutable
BuildConfig. Every stage receives that value explicitly; nothing about a
build is kept in module state.

Example context.json:
    {
        "toolchain_dir": "tools/avr/bin",
        "cflags": ["-Os -w -ffunction-sections -I{platform}/sdk/cores/arduino"],
        "cppflags": ["-std=gnu++11 -fno-exceptions"],
        "ldflags": ["-Os -Wl,--gc-sections"],
        "ldlibflag": [],
        "cpp_options": [],
        "arch": "atmega328p",
        "core": "arduino"
    }
"""

import json
import logging
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ..progress import ProgressCallback, no_progress
from ..errors import ConfigError

logger = logging.getLogger(__name__)

PLATFORM_PLACEHOLDER = "{platform}"
DESCRIPTOR_NAME = "context.json"
CORE_SOURCES_DIR = Path("sdk") / "cores" / "arduino"
AVRDUDE_CONFIG = Path("tools") / "etc" / "avrdude.conf"
ENTRY_TEMPLATE = "main.cpp"
ARCHIVE_NAME = "libmain.a"

DEFAULT_PART = "atmega328p"
DEFAULT_PROGRAMMER = "arduino"
DEFAULT_ARCH_FAMILY = "AVR"

# Descriptor key -> BuildConfig field
FLAG_KEYS = {
    "cflags": "cflags",
    "cppflags": "cppflags",
    "ldflags": "ldflags",
    "ldlibflag": "ldlibflags",
}

PathLike = Union[str, Path]


@dataclass(frozen=True)
class BoardContext:
    """Board-specific values supplied by the caller.

    Any field may be missing. When ``arch`` is missing no board-derived
    compiler flags are emitted at all.
    """

    arch: Optional[str] = None
    mcu: Optional[str] = None
    cpu_clock: Optional[str] = None
    framework_version: Optional[str] = None
    baud_rate: Optional[int] = None
    protocol: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "BoardContext":
        """
        Build a BoardContext from a board JSON mapping.

        Accepts both the field names and the keys used by board JSON files
        (``arduino_version``, ``baudrate``).

        Raises:
            ConfigError: If the baud rate is not an integer
        """
        if not data:
            return cls()

        def pick(*keys: str) -> Optional[Any]:
            for key in keys:
                value = data.get(key)
                if value not in (None, ""):
                    return value
            return None

        baud = pick("baud_rate", "baudrate")
        if baud is not None:
            try:
                baud = int(baud)
            except (TypeError, ValueError):
                raise ConfigError(f"Invalid baud rate in board context: {baud!r}")

        def text(value: Optional[Any]) -> Optional[str]:
            return None if value is None else str(value)

        return cls(
            arch=text(pick("arch")),
            mcu=text(pick("mcu")),
            cpu_clock=text(pick("cpu_clock", "f_cpu")),
            framework_version=text(pick("framework_version", "arduino_version")),
            baud_rate=baud,
            protocol=text(pick("protocol")),
        )


@dataclass(frozen=True)
class BuildContext:
    """Per-invocation inputs to the resolver."""

    platform_dir: PathLike
    board_name: str
    app_dir: Optional[PathLike]
    process_dir: Optional[PathLike]
    board_context: Union[BoardContext, Mapping[str, Any], None] = None
    progress: Optional[ProgressCallback] = None


@dataclass(frozen=True)
class BuildConfig:
    """Resolved, immutable configuration for one build."""

    platform_dir: Path
    toolchain_dir: Path
    board_name: str
    app_dir: Path
    process_dir: Path
    board_context: BoardContext

    cflags: Tuple[str, ...]
    cppflags: Tuple[str, ...]
    ldflags: Tuple[str, ...]
    ldlibflags: Tuple[str, ...]
    cpp_options: Tuple[str, ...]

    gcc: Path
    gpp: Path
    ar: Path
    objcopy: Path
    avrdude: Path
    avrdude_config: Path

    entry_template: Path
    core_sources: Tuple[Path, ...]

    elf_path: Path
    hex_path: Path
    archive_path: Path

    default_part: str = DEFAULT_PART
    default_programmer: str = DEFAULT_PROGRAMMER
    arch_family: str = DEFAULT_ARCH_FAMILY
    progress: ProgressCallback = field(default=no_progress, compare=False)

    @property
    def eep_path(self) -> Path:
        """Path of the optional EEPROM image."""
        return self.app_dir / f"{self.board_name}.eep"

    def with_progress(self, progress: Optional[ProgressCallback]) -> "BuildConfig":
        """Return a copy of this config that reports to another callback."""
        return replace(self, progress=progress or no_progress)


def load_platform_descriptor(platform_dir: PathLike) -> Dict[str, Any]:
    """
    Load the platform descriptor JSON.

    Args:
        platform_dir: Platform root directory

    Returns:
        Descriptor mapping

    Raises:
        ConfigError: If the descriptor is missing, unreadable or not a JSON object
    """
    descriptor_path = Path(platform_dir) / DESCRIPTOR_NAME
    if not descriptor_path.is_file():
        raise ConfigError(f"Platform descriptor not found: {descriptor_path}")

    try:
        with open(descriptor_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(
            f"Malformed platform descriptor: {descriptor_path}", detail=str(e)
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Cannot read platform descriptor: {descriptor_path}", detail=str(e)
        ) from e

    if not isinstance(data, dict):
        raise ConfigError(
            f"Malformed platform descriptor: {descriptor_path}",
            detail="top-level value must be an object",
        )
    return data


def expand_flags(templates: Any, platform_dir: Path, key: str) -> Tuple[str, ...]:
    """
    Tokenise flag templates and substitute the platform placeholder.

    Each template string may hold several flags. Substitution happens per
    token, so a platform path containing spaces stays a single argument.

    Raises:
        ConfigError: If the templates are not a string or list of strings
    """
    if templates is None:
        return ()
    if isinstance(templates, str):
        templates = [templates]
    if not isinstance(templates, list) or not all(isinstance(t, str) for t in templates):
        raise ConfigError(
            f"Platform descriptor key '{key}' must be a list of strings"
        )

    platform = str(platform_dir)
    tokens = []
    for template in templates:
        try:
            parts = shlex.split(template)
        except ValueError as e:
            raise ConfigError(
                f"Cannot parse flag template in '{key}': {template}", detail=str(e)
            ) from e
        tokens.extend(part.replace(PLATFORM_PLACEHOLDER, platform) for part in parts)
    return tuple(tokens)


def list_core_sources(platform_dir: Path) -> Tuple[Path, ...]:
    """Return the platform's core .c/.cpp files, sorted by name."""
    core_dir = platform_dir / CORE_SOURCES_DIR
    if not core_dir.is_dir():
        logger.warning("Core source directory not found: %s", core_dir)
        return ()
    return tuple(
        sorted(
            p for p in core_dir.iterdir()
            if p.is_file() and p.suffix in (".c", ".cpp")
        )
    )


def _require(value: Any, name: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError(f"Missing required build context field: {name}")


def resolve(context: BuildContext) -> BuildConfig:
    """
    Resolve a build context against its platform descriptor.

    Args:
        context: Per-invocation build context

    Returns:
        Immutable BuildConfig

    Raises:
        ConfigError: If required context fields are missing or the
            descriptor is missing or malformed
    """
    _require(context.board_name, "board_name")
    _require(context.app_dir, "app_dir")
    _require(context.process_dir, "process_dir")
    _require(context.platform_dir, "platform_dir")

    platform_dir = Path(context.platform_dir).absolute()
    descriptor = load_platform_descriptor(platform_dir)

    toolchain = descriptor.get("toolchain_dir")
    if not isinstance(toolchain, str) or not toolchain:
        raise ConfigError(
            "Platform descriptor is missing 'toolchain_dir'",
            file=str(platform_dir / DESCRIPTOR_NAME),
        )

    missing = [key for key in FLAG_KEYS if key not in descriptor]
    if missing:
        raise ConfigError(
            "Platform descriptor is missing flag templates: " + ", ".join(missing),
            file=str(platform_dir / DESCRIPTOR_NAME),
        )

    flags = {
        field_name: expand_flags(descriptor.get(key), platform_dir, key)
        for key, field_name in FLAG_KEYS.items()
    }
    cpp_options = expand_flags(descriptor.get("cpp_options") or [], platform_dir, "cpp_options")

    board_context = context.board_context
    if not isinstance(board_context, BoardContext):
        board_context = BoardContext.from_dict(board_context)

    toolchain_dir = platform_dir / toolchain
    app_dir = Path(context.app_dir).absolute()
    board_name = context.board_name

    config = BuildConfig(
        platform_dir=platform_dir,
        toolchain_dir=toolchain_dir,
        board_name=board_name,
        app_dir=app_dir,
        process_dir=Path(context.process_dir).absolute(),
        board_context=board_context,
        cpp_options=cpp_options,
        gcc=toolchain_dir / "avr-gcc",
        gpp=toolchain_dir / "avr-g++",
        ar=toolchain_dir / "avr-ar",
        objcopy=toolchain_dir / "avr-objcopy",
        avrdude=toolchain_dir / "avrdude",
        avrdude_config=platform_dir / AVRDUDE_CONFIG,
        entry_template=platform_dir / ENTRY_TEMPLATE,
        core_sources=list_core_sources(platform_dir),
        elf_path=app_dir / f"{board_name}.elf",
        hex_path=app_dir / f"{board_name}.hex",
        archive_path=app_dir / ARCHIVE_NAME,
        default_part=str(descriptor.get("arch") or DEFAULT_PART),
        default_programmer=str(descriptor.get("core") or DEFAULT_PROGRAMMER),
        arch_family=str(descriptor.get("arch_family") or DEFAULT_ARCH_FAMILY),
        progress=context.progress or no_progress,
        **flags,
    )
    logger.debug("Resolved build config for %s in %s", board_name, app_dir)
    return config
