"""
Link Stage.

This module links object files into the board's ELF image with a single
avr-gcc invocation.

Two object discovery strategies are available:

- DiscoverByDirectoryScan (default) links every ``*.o`` currently in the
  output directory. It does not know which compile run produced them, so
  it is only correct when the output directory is used by exactly one
  build at a time and holds no stale objects.
- DiscoverByExplicitList links exactly the objects it is given, e.g. the
  objects returned by the Compile Stage.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from ..config.build_config import BuildConfig
from ..errors import LinkError
from ..progress import BuildEvent
from .flag_builder import FlagBuilder
from .process_runner import RunStatus, run_process

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class DiscoverByDirectoryScan:
    """Link every object file present in the output directory."""

    name = "scan"

    def discover(self, config: BuildConfig) -> List[Path]:
        if not config.app_dir.is_dir():
            return []
        return sorted(p for p in config.app_dir.glob("*.o") if p.is_file())


class DiscoverByExplicitList:
    """Link exactly the given object files."""

    name = "list"

    def __init__(self, objects: Iterable[PathLike]):
        self.objects = [Path(obj) for obj in objects]

    def discover(self, config: BuildConfig) -> List[Path]:
        return list(self.objects)


@dataclass
class LinkOutput:
    """The linked ELF image."""

    elf_path: Path
    objects: List[Path]


class Linker:
    """Links object files into ``config.elf_path``.

    This class handles:
    - Object discovery through a pluggable strategy
    - Running avr-gcc in link mode
    - Wrapping linker failures in LinkError
    """

    def __init__(self, config: BuildConfig, discovery=None):
        """
        Initialize the linker.

        Args:
            config: Build configuration
            discovery: Object discovery strategy (default: DiscoverByDirectoryScan)
        """
        self.config = config
        self.discovery = discovery or DiscoverByDirectoryScan()

    async def link(
        self,
        extra_flags: Sequence[str] = (),
        extra_lib_flags: Optional[Sequence[str]] = None
    ) -> LinkOutput:
        """
        Link the discovered object files.

        Args:
            extra_flags: Caller linker flags
            extra_lib_flags: Caller library flags

        Returns:
            LinkOutput with the ELF path and the objects that were linked

        Raises:
            LinkError: If there is nothing to link or the linker fails
        """
        config = self.config
        objects = self.discovery.discover(config)
        if not objects:
            raise LinkError(
                f"No object files to link ({self.discovery.name} discovery)",
                file=str(config.app_dir),
            )

        missing = [obj for obj in objects if not obj.exists()]
        if missing:
            raise LinkError(
                "Object files not found",
                file=str(missing[0]),
                detail="\n".join(str(obj) for obj in missing),
            )

        logger.info("linking... %s", config.elf_path)
        config.progress(BuildEvent.info(f"linking... {config.elf_path}", config.elf_path.name))

        command = FlagBuilder.build_link_command(config, objects, extra_flags, extra_lib_flags or ())
        result = await run_process(command, config.process_dir)

        if result.status is RunStatus.FAILED:
            config.progress(BuildEvent.error(result.diagnostic, config.elf_path.name))
            raise LinkError(
                f"Linking failed (exit code {result.returncode})",
                file=str(config.elf_path),
                detail=result.diagnostic,
            )
        if result.status is RunStatus.WARNING:
            logger.warning("linker reported diagnostics for %s", config.elf_path.name)
            config.progress(BuildEvent.warning(result.diagnostic, config.elf_path.name))

        return LinkOutput(elf_path=config.elf_path, objects=objects)
