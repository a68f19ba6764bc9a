"""
Command-line interface for firmpipe.

This module provides the `firmpipe` CLI tool for building and flashing
AVR firmware.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from firmpipe import __version__
from firmpipe.build import BuildPipeline, StdioMode
from firmpipe.cli_utils import (
    BoardContextLoader,
    ErrorFormatter,
    PathValidator,
    ProgressPrinter,
)
from firmpipe.config import BuildContext, resolve
from firmpipe.errors import FirmpipeError


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    platform_dir: Path
    board: str
    app_dir: Path
    sources: List[Path] = field(default_factory=list)
    working_dir: Optional[Path] = None
    board_context: Optional[Path] = None
    include_dirs: List[Path] = field(default_factory=list)
    board_flags: List[str] = field(default_factory=list)
    ldflags: List[str] = field(default_factory=list)
    archive_sources: List[Path] = field(default_factory=list)
    jobs: int = 8
    link_discovery: str = "scan"
    verbose: bool = False


@dataclass
class FlashArgs:
    """Arguments for the flash command."""

    platform_dir: Path
    board: str
    app_dir: Path
    port: str
    baud: Optional[int] = None
    working_dir: Optional[Path] = None
    board_context: Optional[Path] = None
    capture: bool = False
    verbose: bool = False


def setup_logging(verbose: bool) -> None:
    """Configure root logging for CLI runs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_context(args, verbose: bool) -> BuildContext:
    return BuildContext(
        platform_dir=args.platform_dir,
        board_name=args.board,
        app_dir=args.app_dir,
        process_dir=args.working_dir or args.app_dir,
        board_context=BoardContextLoader.load(args.board_context),
        progress=ProgressPrinter(verbose),
    )


def build_command(args: BuildArgs) -> None:
    """Build firmware.

    Examples:
        firmpipe build sketch.cpp -P platforms/arduino-avr -b uno -o build/
        firmpipe build a.cpp b.c -P avr -b uno -o out -I libs/Servo -j 4
        firmpipe build a.cpp -P avr -b uno -o out --archive a.cpp
    """
    print(f"firmpipe build v{__version__}")
    print()

    try:
        args.app_dir.mkdir(parents=True, exist_ok=True)
        config = resolve(_build_context(args, args.verbose))
        pipeline = BuildPipeline(config, concurrency=args.jobs, link_discovery=args.link_discovery)

        print(f"Building {config.board_name} in {config.app_dir}...")
        result = asyncio.run(
            pipeline.build(
                args.sources,
                board_flags=args.board_flags,
                include_dirs=args.include_dirs,
                ldflags=args.ldflags,
                archive_sources=args.archive_sources or None,
            )
        )

        ErrorFormatter.print_success("Build successful!")
        print()
        print(f"Firmware: {result.image.hex_path}")
        if result.archived:
            print(f"Archive:  {result.archived.archive_path}")
        if result.warnings:
            print(f"Warnings: {len(result.warnings)} file(s) compiled with warnings")
        print(f"Build time: {result.build_time:.2f}s")
        sys.exit(0)

    except FirmpipeError as e:
        ErrorFormatter.handle_pipeline_error("Build failed!", e)
    except ValueError as e:
        ErrorFormatter.print_error("Invalid arguments", str(e))
        sys.exit(2)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def flash_command(args: FlashArgs) -> None:
    """Flash a previously built image.

    Examples:
        firmpipe flash -P platforms/arduino-avr -b uno -o build/ -p /dev/ttyACM0
        firmpipe flash -P avr -b uno -o out -p COM3 --baud 57600
    """
    print(f"firmpipe flash v{__version__}")
    print()

    try:
        config = resolve(_build_context(args, args.verbose))
        pipeline = BuildPipeline(config)
        image = pipeline.image_from_disk()
        stdio_mode = StdioMode.CAPTURED if args.capture else StdioMode.INHERITED

        result = asyncio.run(pipeline.flash(image, args.port, args.baud, stdio_mode))

        ErrorFormatter.print_success("Flash successful!")
        print(f"Port: {result.port} ({result.baud_rate} baud)")
        sys.exit(0)

    except FirmpipeError as e:
        ErrorFormatter.handle_pipeline_error("Flash failed!", e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-P",
        "--platform",
        dest="platform_dir",
        type=Path,
        required=True,
        help="Platform directory containing context.json",
    )
    parser.add_argument(
        "-b",
        "--board",
        required=True,
        help="Board name (names the .elf/.hex outputs)",
    )
    parser.add_argument(
        "-o",
        "--app-dir",
        type=Path,
        required=True,
        help="Output directory for objects and images",
    )
    parser.add_argument(
        "-w",
        "--working-dir",
        type=Path,
        default=None,
        help="Working directory for tool invocations (default: app dir)",
    )
    parser.add_argument(
        "--board-context",
        type=Path,
        default=None,
        help="Board context JSON file (arch, mcu, cpu_clock, arduino_version, baudrate, protocol)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def main(argv: Optional[List[str]] = None) -> None:
    """firmpipe - firmware build pipeline."""
    parser = argparse.ArgumentParser(
        prog="firmpipe",
        description="firmpipe - build and flash AVR firmware",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"firmpipe {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Build command
    build_parser = subparsers.add_parser(
        "build",
        help="Compile, link and convert firmware",
    )
    build_parser.add_argument(
        "sources",
        nargs="*",
        type=Path,
        help="Source files to compile",
    )
    _add_common_arguments(build_parser)
    build_parser.add_argument(
        "-I",
        "--include",
        dest="include_dirs",
        action="append",
        type=Path,
        default=[],
        help="Extra include directory (repeatable)",
    )
    build_parser.add_argument(
        "--flag",
        dest="board_flags",
        action="append",
        default=[],
        help="Extra compiler flag, e.g. --flag=-DDEBUG (repeatable)",
    )
    build_parser.add_argument(
        "--ldflag",
        dest="ldflags",
        action="append",
        default=[],
        help="Extra linker flag, e.g. --ldflag=-Wl,-Map=out.map (repeatable)",
    )
    build_parser.add_argument(
        "--archive",
        dest="archive_sources",
        action="append",
        type=Path,
        default=[],
        help="Source whose object goes into libmain.a (repeatable)",
    )
    build_parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=8,
        help="Maximum parallel compilers (default: 8)",
    )
    build_parser.add_argument(
        "--link-discovery",
        choices=["scan", "list"],
        default="scan",
        help="scan: link every .o in the app dir; list: link only this build's objects",
    )

    # Flash command
    flash_parser = subparsers.add_parser(
        "flash",
        help="Flash the built image to a device",
    )
    _add_common_arguments(flash_parser)
    flash_parser.add_argument(
        "-p",
        "--port",
        required=True,
        help="Serial port of the device",
    )
    flash_parser.add_argument(
        "--baud",
        type=int,
        default=None,
        help="Baud rate (board context value wins; default: 115200)",
    )
    flash_parser.add_argument(
        "--capture",
        action="store_true",
        help="Capture avrdude output instead of showing it live",
    )

    parsed_args = parser.parse_args(argv)

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(parsed_args.verbose)
    PathValidator.validate_dir(parsed_args.platform_dir, "Platform directory")

    if parsed_args.command == "build":
        build_args = BuildArgs(
            platform_dir=parsed_args.platform_dir,
            board=parsed_args.board,
            app_dir=parsed_args.app_dir,
            sources=parsed_args.sources,
            working_dir=parsed_args.working_dir,
            board_context=parsed_args.board_context,
            include_dirs=parsed_args.include_dirs,
            board_flags=parsed_args.board_flags,
            ldflags=parsed_args.ldflags,
            archive_sources=parsed_args.archive_sources,
            jobs=parsed_args.jobs,
            link_discovery=parsed_args.link_discovery,
            verbose=parsed_args.verbose,
        )
        build_command(build_args)
    elif parsed_args.command == "flash":
        flash_args = FlashArgs(
            platform_dir=parsed_args.platform_dir,
            board=parsed_args.board,
            app_dir=parsed_args.app_dir,
            port=parsed_args.port,
            baud=parsed_args.baud,
            working_dir=parsed_args.working_dir,
            board_context=parsed_args.board_context,
            capture=parsed_args.capture,
            verbose=parsed_args.verbose,
        )
        flash_command(flash_args)


if __name__ == "__main__":
    main()
