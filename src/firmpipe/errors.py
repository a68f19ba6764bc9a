"""Error types for firmpipe.

Every pipeline failure is a FirmpipeError carrying the stage that failed,
the offending file (when there is one) and the tool's diagnostic text
verbatim, so the operator can find the failing line in the tool output.
"""

from typing import Optional


class FirmpipeError(Exception):
    """Base class for all pipeline errors."""

    stage = "build"

    def __init__(
        self,
        message: str,
        file: Optional[str] = None,
        detail: str = ""
    ):
        super().__init__(message)
        self.message = message
        self.file = file
        self.detail = detail

    def __str__(self) -> str:
        parts = [f"[{self.stage}] {self.message}"]
        if self.file:
            parts.append(f"  file: {self.file}")
        if self.detail:
            parts.append(self.detail.rstrip())
        return "\n".join(parts)


class ConfigError(FirmpipeError):
    """Raised when the platform descriptor or build context is invalid."""

    stage = "config"


class CompileError(FirmpipeError):
    """Raised when one or more translation units fail to compile.

    ``file`` and ``detail`` describe the first failure observed; ``failures``
    holds every (file, detail) pair in the order they were observed.
    """

    stage = "compile"

    def __init__(
        self,
        message: str,
        file: Optional[str] = None,
        detail: str = "",
        failures: Optional[list] = None
    ):
        super().__init__(message, file, detail)
        self.failures = failures or []


class LinkError(FirmpipeError):
    """Raised when linking fails."""

    stage = "link"


class ArchiveError(FirmpipeError):
    """Raised when archive creation fails."""

    stage = "archive"


class ConvertError(FirmpipeError):
    """Raised when the linked image cannot be converted."""

    stage = "convert"


class FlashError(FirmpipeError):
    """Raised when the programmer fails to flash the device."""

    stage = "flash"
