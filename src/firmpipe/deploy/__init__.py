"""
Firmware deployment functionality for firmpipe.

This module provides the flash stage for uploading firmware to devices.
"""

from .deployer import Deployer, FlashResult

__all__ = [
    "Deployer",
    "FlashResult",
]
