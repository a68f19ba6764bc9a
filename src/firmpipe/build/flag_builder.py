"""Command Builder.

This module builds the exact argument lists for every external tool the
pipeline runs: avr-gcc/avr-g++, the linker, avr-ar, avr-objcopy and avrdude.

Design:
    - FlagBuilder methods are static and pure: no I/O, no shared state, so the same
      inputs always give the same argv
    - Commands are argv lists, never shell strings; a path containing spaces
      is always exactly one argument
    - Path arguments are rendered with the host's separators
    - Board defines (-mmcu, F_CPU, ARDUINO, ARDUINO_<arch>) are only emitted
      when the board context names an architecture
"""

import os
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from ..config.build_config import BuildConfig

DEFAULT_BAUD_RATE = 115200
ARCHIVE_FLAGS = "rcs"  # r=insert/replace, c=create, s=index

PathLike = Union[str, Path]


class Language(Enum):
    """Source language, which selects the compiler."""

    C = "c"
    CXX = "c++"


def source_name(path: PathLike) -> str:
    """Short name of a source file: the base name up to its first dot.

    ``foo.ino.cpp`` and ``foo.c`` both map to ``foo``.
    """
    return Path(path).name.split(".")[0]


@dataclass(frozen=True)
class SourceFile:
    """A translation unit to compile."""

    path: Path
    name: str
    language: Language

    @classmethod
    def from_path(cls, path: PathLike) -> "SourceFile":
        path = Path(path)
        language = Language.C if path.suffix == ".c" else Language.CXX
        return cls(path=path, name=source_name(path), language=language)

    def object_path(self, output_dir: Path) -> Path:
        """Object file this source compiles to inside ``output_dir``."""
        return Path(output_dir) / f"{self.name}.o"


@dataclass(frozen=True)
class CommandLine:
    """A fully built tool invocation."""

    args: Tuple[str, ...]

    @property
    def program(self) -> str:
        return self.args[0]

    def __iter__(self):
        return iter(self.args)

    def __len__(self) -> int:
        return len(self.args)

    def __str__(self) -> str:
        return " ".join(shlex.quote(arg) for arg in self.args)


def host_path(path: PathLike) -> str:
    """Render a path with the host OS separators."""
    return os.path.normpath(str(path))

def resolve_baud_rate(
    board_baud: Optional[int],
    requested_baud: Optional[int]
) -> int:
    """Effective baud rate: board context first, then caller, then 115200."""
    return board_baud or requested_baud or DEFAULT_BAUD_RATE


class FlagBuilder:
    """Builds tool command lines from a BuildConfig.

    This class handles:
    - Board-derived defines and include switches
    - Compiler, linker, archiver, objcopy and avrdude argv lists
    """

    @staticmethod
    def board_defines(config: BuildConfig) -> List[str]:
        """
        Board-derived compiler flags.

        Args:
            config: Build configuration

        Returns:
            Flags such as -mmcu=atmega328p -DF_CPU=16000000L -DARDUINO=10819
            -DARDUINO_AVR_UNO -DARDUINO_ARCH_AVR, or an empty list when the
            board context has no architecture
        """
        board = config.board_context
        if not board.arch:
            return []

        flags = []
        if board.mcu:
            flags.append(f"-mmcu={board.mcu}")
        if board.cpu_clock:
            flags.append(f"-DF_CPU={board.cpu_clock}")
        if board.framework_version:
            flags.append(f"-DARDUINO={board.framework_version}")
        flags.append(f"-DARDUINO_{board.arch}")
        flags.append(f"-DARDUINO_ARCH_{config.arch_family}")
        return flags

    @staticmethod
    def include_switches(include_dirs: Iterable[PathLike]) -> List[str]:
        """Format include directories as -I switches, one argument each."""
        return [f"-I{host_path(inc)}" for inc in include_dirs]

    @staticmethod
    def build_compile_command(
        source: Union[SourceFile, PathLike],
        config: BuildConfig,
        board_flags: Sequence[str] = (),
        include_dirs: Iterable[PathLike] = (),
        board_cpp_options: Sequence[str] = (),
        output_dir: Optional[Path] = None
    ) -> CommandLine:
        """
        Build the compiler command for one source file.

        C sources use avr-gcc with the C flags; everything else uses avr-g++
        with the C flags followed by the C++ flags.

        Args:
            source: Source file to compile
            config: Build configuration
            board_flags: Per-board compiler flags
            include_dirs: Extra include directories
            board_cpp_options: Per-board options placed before all other flags
            output_dir: Object directory (default: config.app_dir)

        Returns:
            CommandLine ending in ``-c <source> -o <object>``
        """
        if not isinstance(source, SourceFile):
            source = SourceFile.from_path(source)

        if source.language is Language.C:
            compiler = config.gcc
            language_flags: Sequence[str] = config.cflags
        else:
            compiler = config.gpp
            language_flags = config.cflags + config.cppflags

        obj = source.object_path(output_dir or config.app_dir)

        args = [host_path(compiler)]
        args.extend(config.cpp_options)
        args.extend(board_cpp_options)
        args.extend(language_flags)
        args.extend(board_flags)
        args.extend(FlagBuilder.include_switches(include_dirs))
        args.extend(FlagBuilder.board_defines(config))
        args.extend(["-c", host_path(source.path), "-o", host_path(obj)])
        return CommandLine(tuple(args))

    @staticmethod
    def build_link_command(
        config: BuildConfig,
        objects: Iterable[PathLike],
        extra_flags: Sequence[str] = (),
        extra_lib_flags: Sequence[str] = ()
    ) -> CommandLine:
        """
        Build the link command producing ``config.elf_path``.

        Args:
            config: Build configuration
            objects: Object files to link, in link order
            extra_flags: Caller linker flags, placed after the configured ones
            extra_lib_flags: Caller library flags, placed after the configured ones

        Returns:
            CommandLine for avr-gcc in link mode
        """
        args = [host_path(config.gcc)]
        args.extend(config.ldflags)
        args.extend(extra_flags)
        args.extend(FlagBuilder.board_defines(config))
        args.extend(["-o", host_path(config.elf_path)])
        args.extend(host_path(obj) for obj in objects)
        args.append(f"-L{host_path(config.app_dir)}")
        args.extend(config.ldlibflags)
        args.extend(extra_lib_flags)
        args.append("-lm")
        return CommandLine(tuple(args))

    @staticmethod
    def build_archive_command(
        config: BuildConfig,
        objects: Iterable[PathLike]
    ) -> CommandLine:
        """Build the avr-ar command producing ``config.archive_path``."""
        args = [host_path(config.ar), ARCHIVE_FLAGS, host_path(config.archive_path)]
        args.extend(host_path(obj) for obj in objects)
        return CommandLine(tuple(args))

    @staticmethod
    def build_convert_command(config: BuildConfig) -> CommandLine:
        """Build the avr-objcopy command converting the ELF image to Intel HEX.

        The EEPROM section is not part of the flash image and is removed.
        """
        return CommandLine((
            host_path(config.objcopy),
            "-O", "ihex",
            "-R", ".eeprom",
            host_path(config.elf_path),
            host_path(config.hex_path),
        ))

    @staticmethod
    def build_eeprom_command(config: BuildConfig, eep_path: Optional[Path] = None) -> CommandLine:
        """Build the avr-objcopy command extracting only the EEPROM section."""
        return CommandLine((
            host_path(config.objcopy),
            "-O", "ihex",
            "-j", ".eeprom",
            "--set-section-flags=.eeprom=alloc,load",
            "--no-change-warnings",
            "--change-section-lma", ".eeprom=0",
            host_path(config.elf_path),
            host_path(eep_path or config.eep_path),
        ))

    @staticmethod
    def build_flash_command(
        config: BuildConfig,
        port: str,
        baud_rate: Optional[int] = None,
        hex_path: Optional[Path] = None
    ) -> CommandLine:
        """
        Build the avrdude command writing the HEX image to flash.

        Args:
            config: Build configuration
            port: Serial port of the device (e.g. /dev/ttyACM0, COM3)
            baud_rate: Caller baud rate; the board context value wins if set
            hex_path: Image to write (default: config.hex_path)

        Returns:
            CommandLine for avrdude
        """
        board = config.board_context
        baud = resolve_baud_rate(board.baud_rate, baud_rate)
        part = board.mcu or config.default_part
        programmer = board.protocol or config.default_programmer

        return CommandLine((
            host_path(config.avrdude),
            "-C", host_path(config.avrdude_config),
            f"-p{part}",
            f"-c{programmer}",
            f"-P{port}",
            f"-b{baud}",
            "-D",  # Don't erase; the bootloader handles it
            f"-Uflash:w:{host_path(hex_path or config.hex_path)}:i",
        ))
