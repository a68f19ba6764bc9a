"""Compile Stage.

This module compiles every translation unit of a build with a bounded pool
of compiler processes.

Design:
    - The platform entry point (main.cpp) is copied into the output
      directory and compiled along with the caller's sources and the
      platform core sources. A caller source already at that location is
      compiled in its place and never overwritten
    - A fixed number of worker coroutines pull CompileTasks from a shared
      queue, so at most ``concurrency`` compilers run at once
    - Every file's outcome is reported through the progress callback
    - Observe-all, fail-loud: a failed file never stops its siblings; the
      stage raises CompileError only after every task is terminal
    - A progress callback that raises does not stop the pool; its first
      error is re-raised once every task is terminal
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from ..config.build_config import BuildConfig
from ..errors import CompileError
from ..progress import BuildEvent
from .flag_builder import CommandLine, FlagBuilder, SourceFile
from .process_runner import RunResult, RunStatus, run_process

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 8
ENTRY_POINT_NAME = "main.cpp"

PathLike = Union[str, Path]


@dataclass
class CompileTask:
    """One source bound to its compiler command and object path."""

    source: SourceFile
    command: CommandLine
    object_path: Path
    result: Optional[RunResult] = None

    @property
    def done(self) -> bool:
        return self.result is not None


@dataclass
class CompileOutput:
    """Objects produced by a successful Compile Stage."""

    objects: List[Path] = field(default_factory=list)
    warnings: List[Tuple[str, str]] = field(default_factory=list)

class CompilationExecutor:
    """Runs the Compile Stage for one BuildConfig.

    This class handles:
    - Placing the entry point in the output directory
    - Planning one compiler command per source
    - Running the commands through a bounded worker pool
    - Reporting each file's outcome through the progress callback
    """

    def __init__(self, config: BuildConfig, concurrency: int = DEFAULT_CONCURRENCY):
        """
        Initialize the executor.

        Args:
            config: Build configuration
            concurrency: Maximum compilers running at once

        Raises:
            ValueError: If concurrency is below 1
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.config = config
        self.concurrency = concurrency

    @property
    def entry_point_path(self) -> Path:
        return self.config.app_dir / ENTRY_POINT_NAME

    def copy_entry_point(self) -> Path:
        """
        Copy the platform entry-point template into the output directory.

        Returns:
            Path of the copied file

        Raises:
            CompileError: If the template is missing or cannot be copied
        """
        config = self.config
        target = self.entry_point_path
        if not config.entry_template.is_file():
            raise CompileError(
                "Entry point template not found",
                file=str(config.entry_template),
            )
        try:
            config.app_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(config.entry_template, target)
        except OSError as e:
            raise CompileError(
                "Failed to copy entry point template",
                file=str(config.entry_template),
                detail=str(e),
            ) from e
        return target

    def compile_list(self, sources: Iterable[PathLike]) -> List[PathLike]:
        """
        Caller sources, then the entry point, then the core sources.

        A caller source that already lives at the entry point's location in
        the output directory is compiled as the entry point; the template is
        not copied over it.
        """
        sources = list(sources)
        target = self.entry_point_path.resolve()
        if any(Path(s).resolve() == target for s in sources):
            logger.debug("Using caller's %s as the entry point", target)
            return sources + list(self.config.core_sources)
        return sources + [self.copy_entry_point()] + list(self.config.core_sources)

    def plan_tasks(
        self,
        sources: Iterable[PathLike],
        board_cpp_options: Sequence[str] = (),
        board_flags: Sequence[str] = (),
        include_dirs: Sequence[PathLike] = ()
    ) -> List[CompileTask]:
        """
        Build one CompileTask per source.

        A source whose object path is already taken by an earlier source is
        skipped with a warning, so no two compilers ever write the same object.
        """
        config = self.config
        tasks = []
        claimed = {}
        for path in sources:
            source = SourceFile.from_path(path)
            obj = source.object_path(config.app_dir)
            if obj in claimed:
                message = f"skipping {source.path.name}: {obj.name} already built from {claimed[obj].name}"
                logger.warning(message)
                config.progress(BuildEvent.warning(message, source.path.name))
                continue
            claimed[obj] = source.path
            command = FlagBuilder.build_compile_command(
                source,
                config,
                board_flags=board_flags,
                include_dirs=include_dirs,
                board_cpp_options=board_cpp_options,
            )
            tasks.append(CompileTask(source=source, command=command, object_path=obj))
        return tasks

    def _report(self, task: CompileTask) -> None:
        result = task.result
        name = task.source.path.name
        if result.status is RunStatus.OK:
            logger.info("compiling... %s ok.", name)
            self.config.progress(BuildEvent.info(f"compiling... {name} ok.", name))
        elif result.status is RunStatus.WARNING:
            logger.warning("compiling... %s ok. (with warnings)", name)
            self.config.progress(BuildEvent.warning(result.diagnostic, name))
        else:
            logger.error("compiling... %s failed.", name)
            self.config.progress(BuildEvent.error(result.diagnostic, name))

    async def run_tasks(self, tasks: List[CompileTask]) -> List[CompileTask]:
        """
        Run compile tasks with at most ``concurrency`` compilers at once.

        Returns only after every task has a result. Tasks are returned in
        completion order.

        Raises:
            Exception: The first error raised by the progress callback,
                re-raised once every task is terminal
        """
        queue: asyncio.Queue = asyncio.Queue()
        for task in tasks:
            queue.put_nowait(task)
        finished: List[CompileTask] = []
        callback_errors: List[Exception] = []

        async def worker() -> None:
            while True:
                try:
                    task = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                logger.debug("compiling => %s", task.source.path)
                task.result = await run_process(task.command, self.config.process_dir)
                finished.append(task)
                try:
                    self._report(task)
                except Exception as e:
                    logger.error("Progress callback failed for %s: %s", task.source.path.name, e)
                    callback_errors.append(e)

        workers = min(self.concurrency, len(tasks))
        await asyncio.gather(*(worker() for _ in range(workers)))
        if callback_errors:
            raise callback_errors[0]
        return finished

    async def compile(
        self,
        sources: Iterable[PathLike],
        board_cpp_options: Sequence[str] = (),
        board_flags: Sequence[str] = (),
        include_dirs: Sequence[PathLike] = ()
    ) -> CompileOutput:
        """
        Compile the caller's sources, the entry point and the core sources.

        Args:
            sources: Caller source files (not modified)
            board_cpp_options: Per-board options placed first on the command line
            board_flags: Per-board compiler flags
            include_dirs: Extra include directories

        Returns:
            CompileOutput with the object files in compile-list order

        Raises:
            CompileError: After all files are terminal, if any of them failed;
                names the first failure observed
        """
        tasks = self.plan_tasks(self.compile_list(sources), board_cpp_options, board_flags, include_dirs)

        logger.info("Compiling %d files (%d at a time)", len(tasks), self.concurrency)
        finished = await self.run_tasks(tasks)

        failed = [t for t in finished if t.result.status is RunStatus.FAILED]
        if failed:
            first = failed[0]
            raise CompileError(
                f"{len(failed)} of {len(tasks)} files failed to compile",
                file=str(first.source.path),
                detail=first.result.diagnostic,
                failures=[(str(t.source.path), t.result.diagnostic) for t in failed],
            )

        warnings = [
            (str(t.source.path), t.result.diagnostic)
            for t in finished
            if t.result.status is RunStatus.WARNING
        ]
        return CompileOutput(objects=[t.object_path for t in tasks], warnings=warnings)
