"""
Firmware deployment module for flashing AVR devices.

This module transfers the HEX image to a device through avrdude. The tool
runs with the operator's terminal attached by default so its progress bar
and any interactive prompts stay visible.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..build.binary_generator import ImageOutput
from ..build.flag_builder import FlagBuilder, resolve_baud_rate
from ..build.process_runner import RunStatus, StdioMode, run_process
from ..config.build_config import BuildConfig
from ..errors import FlashError
from ..progress import BuildEvent

logger = logging.getLogger(__name__)


@dataclass
class FlashResult:
    """Result of a firmware flash operation."""

    success: bool
    message: str
    port: str
    baud_rate: int
    image: Path


class Deployer:
    """Flashes firmware images to AVR devices with avrdude.

    This class handles:
    - Checking the image and port before avrdude starts
    - Baud rate resolution against the board context
    - Running avrdude with the operator's terminal or captured output
    """

    def __init__(self, config: BuildConfig):
        """
        Initialize the deployer.

        Args:
            config: Build configuration
        """
        self.config = config

    async def deploy(
        self,
        port: str,
        baud_rate: Optional[int] = None,
        stdio_mode: StdioMode = StdioMode.INHERITED,
        image: Optional[ImageOutput] = None
    ) -> FlashResult:
        """
        Flash the HEX image to the device on ``port``.

        Args:
            port: Serial port of the device
            baud_rate: Requested baud rate; the board context value takes priority
            stdio_mode: INHERITED (default) or CAPTURED
            image: Output of the conversion stage (default: config.hex_path)

        Returns:
            FlashResult

        Raises:
            FlashError: If the image or port is missing, or avrdude fails. The
                message carries avrdude's exit code and its output verbatim
                (device not found, permission denied, protocol mismatch, ...)
        """
        config = self.config
        hex_path = image.hex_path if image else config.hex_path
        if not hex_path.exists():
            raise FlashError("Firmware image not found; build first", file=str(hex_path))
        if not port:
            raise FlashError("No serial port specified", file=str(hex_path))

        baud = resolve_baud_rate(config.board_context.baud_rate, baud_rate)
        command = FlagBuilder.build_flash_command(config, port, baud_rate, hex_path)

        logger.info("flashing %s to %s at %d baud", hex_path.name, port, baud)
        config.progress(BuildEvent.info(f"flashing... {hex_path.name} -> {port}", hex_path.name))

        result = await run_process(command, config.process_dir, stdio_mode)

        if result.status is RunStatus.FAILED:
            raise FlashError(
                f"Upload to {port} failed (exit code {result.returncode})",
                file=str(hex_path),
                detail=result.diagnostic,
            )
        if result.status is RunStatus.WARNING:
            # avrdude writes its progress report to stderr
            logger.debug("avrdude output:\n%s", result.stderr)

        return FlashResult(
            success=True,
            message="Firmware uploaded successfully",
            port=port,
            baud_rate=baud,
            image=hex_path,
        )
