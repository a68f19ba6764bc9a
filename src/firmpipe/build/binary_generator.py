"""Image Conversion Stage.

This module converts the linked ELF image into the Intel HEX image that
avrdude flashes, and can extract the EEPROM section into its own file.

Design:
    - One avr-objcopy invocation per output file
    - The flash image drops the .eeprom section
    - The ELF image must exist before objcopy runs
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..config.build_config import BuildConfig
from ..errors import ConvertError
from ..progress import BuildEvent
from .flag_builder import CommandLine, FlagBuilder
from .linker import LinkOutput
from .process_runner import RunStatus, run_process

logger = logging.getLogger(__name__)


@dataclass
class ImageOutput:
    """The flashable image."""

    hex_path: Path

class BinaryGenerator:
    """Converts the linked ELF image with avr-objcopy.

    This class handles:
    - The Intel HEX flash image
    - The optional EEPROM image
    """

    def __init__(self, config: BuildConfig):
        """
        Initialize the generator.

        Args:
            config: Build configuration
        """
        self.config = config

    def _elf_path(self, linked: Optional[LinkOutput]) -> Path:
        elf_path = linked.elf_path if linked else self.config.elf_path
        if not elf_path.exists():
            raise ConvertError("ELF file not found; link first", file=str(elf_path))
        return elf_path

    async def _objcopy(self, command: CommandLine, output: Path, what: str) -> Path:
        result = await run_process(command, self.config.process_dir)
        if result.status is RunStatus.FAILED:
            raise ConvertError(
                f"{what} generation failed (exit code {result.returncode})",
                file=str(output),
                detail=result.diagnostic,
            )
        if result.status is RunStatus.WARNING:
            self.config.progress(BuildEvent.warning(result.diagnostic, output.name))
        return output

    async def convert(self, linked: Optional[LinkOutput] = None) -> ImageOutput:
        """
        Convert the linked image to ``config.hex_path``.

        Args:
            linked: Output of the Link Stage (default: config.elf_path)

        Returns:
            ImageOutput

        Raises:
            ConvertError: If the ELF image is missing or objcopy fails
        """
        config = self.config
        self._elf_path(linked)
        logger.info("creating hex image... %s", config.hex_path)
        config.progress(BuildEvent.info(f"creating hex image... {config.hex_path}", config.hex_path.name))

        await self._objcopy(FlagBuilder.build_convert_command(config), config.hex_path, "HEX image")
        return ImageOutput(hex_path=config.hex_path)

    async def extract_eeprom(self, linked: Optional[LinkOutput] = None) -> Path:
        """Write the EEPROM section of the linked image to ``config.eep_path``."""
        config = self.config
        self._elf_path(linked)
        logger.info("extracting eeprom... %s", config.eep_path)
        return await self._objcopy(FlagBuilder.build_eeprom_command(config), config.eep_path, "EEPROM image")
