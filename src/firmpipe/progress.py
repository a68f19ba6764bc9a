"""Progress events reported by the build stages.

A single tagged payload replaces the old "plain string or {file, error}
object" convention: every callback receives a BuildEvent.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class EventKind(Enum):
    """Kind of progress event."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class BuildEvent:
    """One progress report from a stage.

    Attributes:
        kind: INFO for status messages, WARNING for zero-exit runs with
            diagnostics, ERROR for failed runs
        file: Base name of the file the event concerns, if any
        message: Human readable status or the tool's diagnostic text
    """

    kind: EventKind
    message: str
    file: Optional[str] = None

    @classmethod
    def info(cls, message: str, file: Optional[str] = None) -> "BuildEvent":
        return cls(EventKind.INFO, message, file)

    @classmethod
    def warning(cls, message: str, file: Optional[str] = None) -> "BuildEvent":
        return cls(EventKind.WARNING, message, file)

    @classmethod
    def error(cls, message: str, file: Optional[str] = None) -> "BuildEvent":
        return cls(EventKind.ERROR, message, file)

    def __str__(self) -> str:
        if self.file and self.kind is not EventKind.INFO:
            return f"{self.kind.value}: {self.file}: {self.message}"
        return self.message


ProgressCallback = Callable[[BuildEvent], None]


def no_progress(event: BuildEvent) -> None:
    """Default progress callback; ignores every event."""
