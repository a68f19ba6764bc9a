"""CLI utility functions for firmpipe.

This module provides common utilities used across CLI commands including:
- Board context loading from JSON files
- Progress event printing
- Error handling and formatting
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from firmpipe.config import BoardContext
from firmpipe.errors import ConfigError, FirmpipeError
from firmpipe.progress import BuildEvent, EventKind


class BoardContextLoader:
    """Loads board context JSON files."""

    @staticmethod
    def load(path: Optional[Path]) -> BoardContext:
        """Load a board context file.

        Args:
            path: Path to a JSON object file, or None for an empty context

        Returns:
            BoardContext

        Raises:
            ConfigError: If the file is missing or not a JSON object
        """
        if path is None:
            return BoardContext()
        if not path.is_file():
            raise ConfigError(f"Board context file not found: {path}")
        try:
            data: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Malformed board context file: {path}", detail=str(e)) from e
        if not isinstance(data, dict):
            raise ConfigError(f"Malformed board context file: {path}", detail="expected a JSON object")
        return BoardContext.from_dict(data)


class ProgressPrinter:
    """Prints build events to the terminal."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def __call__(self, event: BuildEvent) -> None:
        if event.kind is EventKind.INFO:
            print(event.message)
        elif event.kind is EventKind.WARNING:
            print(f"{ErrorFormatter.YELLOW}warning: {event.file}{ErrorFormatter.RESET}")
            # Full diagnostic text only in verbose mode
            if self.verbose:
                print(event.message)
        else:
            print(f"{ErrorFormatter.RED}error: {event.file}{ErrorFormatter.RESET}")
            print(event.message)


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Build failed")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        print()
        print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        """Print formatted success message."""
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        """Print formatted warning message."""
        print()
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_pipeline_error(title: str, error: FirmpipeError) -> None:
        """Print a pipeline error, including every failed file for compile errors."""
        failures = getattr(error, "failures", None)
        if failures and len(failures) > 1:
            lines = [str(error), "", "All failures:"]
            lines.extend(f"  {file}" for file, _detail in failures)
            ErrorFormatter.print_error(title, "\n".join(lines))
        else:
            ErrorFormatter.print_error(title, str(error))
        sys.exit(1)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


class PathValidator:
    """Validates directories given on the command line."""

    @staticmethod
    def validate_dir(path: Path, what: str) -> None:
        """Exit with status 2 unless ``path`` is an existing directory."""
        if not path.exists():
            print(
                f"{ErrorFormatter.RED}✗ Error: {what} does not exist: {path}{ErrorFormatter.RESET}"
            )
            sys.exit(2)
        if not path.is_dir():
            print(
                f"{ErrorFormatter.RED}✗ Error: {what} is not a directory: {path}{ErrorFormatter.RESET}"
            )
            sys.exit(2)
