"""
Build pipeline orchestration for firmpipe.

This module sequences the stages of one build:

    Compile -> Link -> (Archive) -> Convert -> Flash

Each stage takes the previous stage's output value as an argument, so the
order is a data dependency rather than a calling convention. Flash can
also run on its own against an image already on disk.

Example usage:
    config = resolve(BuildContext(platform_dir, "uno", app_dir, app_dir, board))
    pipeline = BuildPipeline(config, concurrency=4)
    result = asyncio.run(pipeline.build(["sketch.cpp"], include_dirs=[lib_dir]))
    asyncio.run(pipeline.flash(result.image, "/dev/ttyACM0"))
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..config.build_config import BuildConfig
from ..deploy.deployer import Deployer, FlashResult
from ..errors import ConvertError
from .archive_creator import ArchiveCreator, ArchiveOutput
from .binary_generator import BinaryGenerator, ImageOutput
from .compilation_executor import DEFAULT_CONCURRENCY, CompilationExecutor, CompileOutput
from .linker import DiscoverByDirectoryScan, DiscoverByExplicitList, Linker, LinkOutput
from .process_runner import StdioMode

logger = logging.getLogger(__name__)

LINK_DISCOVERY_MODES = ("scan", "list")

PathLike = Union[str, Path]


@dataclass
class BuildResult:
    """Outputs of a completed build."""

    compiled: CompileOutput
    linked: LinkOutput
    image: ImageOutput
    archived: Optional[ArchiveOutput] = None
    build_time: float = 0.0
    warnings: List[str] = field(default_factory=list)


class BuildPipeline:
    """
    Runs the stages of one build against one BuildConfig.

    Args:
        config: Resolved build configuration (never modified)
        concurrency: Maximum compilers running at once
        link_discovery: "scan" links every object in the output directory,
            "list" links exactly the objects the Compile Stage produced
    """

    def __init__(
        self,
        config: BuildConfig,
        concurrency: int = DEFAULT_CONCURRENCY,
        link_discovery: str = "scan"
    ):
        if link_discovery not in LINK_DISCOVERY_MODES:
            raise ValueError(
                f"link_discovery must be one of {LINK_DISCOVERY_MODES}, got {link_discovery!r}"
            )
        self.config = config
        self.link_discovery = link_discovery
        self.executor = CompilationExecutor(config, concurrency)
        self.archiver = ArchiveCreator(config)
        self.generator = BinaryGenerator(config)
        self.deployer = Deployer(config)

    @property
    def concurrency(self) -> int:
        return self.executor.concurrency

    def linker(self, compiled: CompileOutput) -> Linker:
        """Linker using the configured object discovery."""
        if self.link_discovery == "list":
            return Linker(self.config, DiscoverByExplicitList(compiled.objects))
        return Linker(self.config, DiscoverByDirectoryScan())

    async def compile(
        self,
        sources: Sequence[PathLike],
        board_cpp_options: Sequence[str] = (),
        board_flags: Sequence[str] = (),
        include_dirs: Sequence[PathLike] = ()
    ) -> CompileOutput:
        return await self.executor.compile(sources, board_cpp_options, board_flags, include_dirs)

    async def link(
        self,
        compiled: CompileOutput,
        extra_flags: Sequence[str] = (),
        extra_lib_flags: Optional[Sequence[str]] = None
    ) -> LinkOutput:
        return await self.linker(compiled).link(extra_flags, extra_lib_flags)

    async def archive(self, sources: Sequence[PathLike]) -> ArchiveOutput:
        return await self.archiver.create_archive(sources)

    async def convert(self, linked: LinkOutput) -> ImageOutput:
        return await self.generator.convert(linked)

    async def flash(
        self,
        image: ImageOutput,
        port: str,
        baud_rate: Optional[int] = None,
        stdio_mode: StdioMode = StdioMode.INHERITED
    ) -> FlashResult:
        return await self.deployer.deploy(port, baud_rate, stdio_mode, image)

    def image_from_disk(self) -> ImageOutput:
        """
        Image of a previous build, for flashing without rebuilding.

        Raises:
            ConvertError: If no HEX image exists yet
        """
        if not self.config.hex_path.exists():
            raise ConvertError("No firmware image found; build first", file=str(self.config.hex_path))
        return ImageOutput(hex_path=self.config.hex_path)

    async def build(
        self,
        sources: Sequence[PathLike],
        board_cpp_options: Sequence[str] = (),
        board_flags: Sequence[str] = (),
        include_dirs: Sequence[PathLike] = (),
        ldflags: Sequence[str] = (),
        ldlibflags: Optional[Sequence[str]] = None,
        archive_sources: Optional[Sequence[PathLike]] = None
    ) -> BuildResult:
        """
        Compile, link, optionally archive, and convert.

        Args:
            sources: Caller source files
            board_cpp_options: Per-board options placed first on compile lines
            board_flags: Per-board compiler flags
            include_dirs: Extra include directories
            ldflags: Extra linker flags
            ldlibflags: Extra library flags
            archive_sources: Sources whose objects go into libmain.a

        Returns:
            BuildResult

        Raises:
            FirmpipeError: From the first stage that fails
        """
        start_time = time.time()

        compiled = await self.compile(sources, board_cpp_options, board_flags, include_dirs)
        linked = await self.link(compiled, ldflags, ldlibflags)
        archived = await self.archive(archive_sources) if archive_sources else None
        image = await self.convert(linked)

        build_time = time.time() - start_time
        logger.info("build finished in %.2fs", build_time)
        return BuildResult(
            compiled=compiled,
            linked=linked,
            image=image,
            archived=archived,
            build_time=build_time,
            warnings=[f"{file}: {detail}" for file, detail in compiled.warnings],
        )
