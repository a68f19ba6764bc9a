"""
Build system components for firmpipe.

This module provides the build pipeline implementation including:
- Command construction (avr-gcc, avr-g++, avr-ar, avr-objcopy, avrdude)
- Process execution and outcome classification
- Compilation, linking, archiving and image conversion stages
- Build orchestration
"""

from .flag_builder import CommandLine, FlagBuilder, Language, SourceFile, resolve_baud_rate
from .process_runner import RunResult, RunStatus, StdioMode, run_process
from .compilation_executor import CompilationExecutor, CompileOutput, CompileTask
from .linker import DiscoverByDirectoryScan, DiscoverByExplicitList, Linker, LinkOutput
from .archive_creator import ArchiveCreator, ArchiveOutput
from .binary_generator import BinaryGenerator, ImageOutput
from .orchestrator import BuildPipeline, BuildResult

__all__ = [
    "ArchiveCreator",
    "ArchiveOutput",
    "BinaryGenerator",
    "BuildPipeline",
    "BuildResult",
    "CommandLine",
    "CompilationExecutor",
    "CompileOutput",
    "CompileTask",
    "DiscoverByDirectoryScan",
    "DiscoverByExplicitList",
    "FlagBuilder",
    "ImageOutput",
    "Language",
    "LinkOutput",
    "Linker",
    "RunResult",
    "RunStatus",
    "SourceFile",
    "StdioMode",
    "resolve_baud_rate",
    "run_process",
]
