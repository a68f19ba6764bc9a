"""Archive Stage.

This module bundles the objects of an explicit list of sources into the
static library ``libmain.a`` with one avr-ar invocation.

Design:
    - Allow-list based: each source maps to ``<app_dir>/<name>.o``; nothing
      else in the output directory is archived
    - Order of the archive members follows the given source list
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Union

from ..config.build_config import BuildConfig
from ..errors import ArchiveError
from ..progress import BuildEvent
from .flag_builder import FlagBuilder, SourceFile
from .process_runner import RunStatus, run_process

logger = logging.getLogger(__name__)


@dataclass
class ArchiveOutput:
    """The created static library."""

    archive_path: Path
    objects: List[Path]

class ArchiveCreator:
    """Creates ``libmain.a`` from an allow-list of sources."""

    def __init__(self, config: BuildConfig):
        self.config = config

    def members(self, sources: Iterable[Union[str, Path]]) -> List[Path]:
        """Object paths for the given sources, in source order."""
        return [SourceFile.from_path(src).object_path(self.config.app_dir) for src in sources]

    async def create_archive(self, sources: Iterable[Union[str, Path]]) -> ArchiveOutput:
        """
        Create ``config.archive_path`` from the objects of ``sources``.

        Args:
            sources: Source files whose objects go into the archive

        Returns:
            ArchiveOutput

        Raises:
            ArchiveError: If no sources are given or the archiver fails
        """
        config = self.config
        objects = self.members(sources)
        if not objects:
            raise ArchiveError("No object files provided for archive", file=str(config.archive_path))

        logger.info("archiving... %s", config.archive_path)
        config.progress(BuildEvent.info(f"archiving... {config.archive_path}", config.archive_path.name))

        command = FlagBuilder.build_archive_command(config, objects)
        result = await run_process(command, config.process_dir)

        if result.status is RunStatus.FAILED:
            raise ArchiveError(
                f"Archive creation failed for {config.archive_path.name}",
                file=str(config.archive_path),
                detail=result.diagnostic,
            )
        if result.status is RunStatus.WARNING:
            config.progress(BuildEvent.warning(result.diagnostic, config.archive_path.name))

        return ArchiveOutput(archive_path=config.archive_path, objects=objects)
