"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from ploadctl.core.model import BootloaderType, DeviceDescriptor, ProgressCallback


class DeviceHandle(Protocol):
    """An open session to exactly one bootloader."""

    def read_flash(self, progress: ProgressCallback | None = None) -> bytes:
        """Return the whole application flash region."""

    def write_flash(self, data: bytes, progress: ProgressCallback | None = None) -> None:
        """Erase the application flash region and program it with ``data``."""

    def read_eeprom(self, progress: ProgressCallback | None = None) -> bytes:
        """Return the whole EEPROM region."""

    def write_eeprom(self, data: bytes, progress: ProgressCallback | None = None) -> None:
        """Program the whole EEPROM region with ``data``."""

    def check_application(self) -> bool:
        """Return True if the bootloader reports a valid application."""

    def restart(self) -> None:
        """Leave the bootloader and start the application."""

    def close(self) -> None:
        """Release the underlying device."""


class Transport(Protocol):
    def list_devices(self, types: Sequence[BootloaderType]) -> list[DeviceDescriptor]:
        """Enumerate connected bootloaders of the given types."""

    def open(self, device: DeviceDescriptor) -> DeviceHandle:
        """Open a previously listed device."""
