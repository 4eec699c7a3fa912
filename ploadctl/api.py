"""Stable public API for building tooling on top of ploadctl.

This module is the supported integration surface for third-party callers
such as build scripts or IDE plugins. Avoid importing from private/internal
modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ploadctl.core.bootloader_types import load_bootloader_types
from ploadctl.core.errors import (
    BadArguments,
    BootloaderNotFound,
    BootloaderTypeLoadError,
    BootloaderTypeValidationError,
    DeviceDiscoveryError,
    DeviceSelectionError,
    ExitCode,
    HexFileError,
    OperationFailed,
    PloadError,
    TransportConnectError,
    TransportError,
    TransportIOError,
)
from ploadctl.core.model import BootloaderType, DeviceDescriptor, DeviceInfo, ProgressCallback
from ploadctl.core.runner import Orchestrator
from ploadctl.core.session import DeviceSession
from ploadctl.transports.base import DeviceHandle, Transport
from ploadctl.transports.usb import UsbTransport

__all__ = [
    "PloadError",
    "BadArguments",
    "BootloaderNotFound",
    "OperationFailed",
    "DeviceDiscoveryError",
    "DeviceSelectionError",
    "BootloaderTypeLoadError",
    "BootloaderTypeValidationError",
    "HexFileError",
    "TransportError",
    "TransportConnectError",
    "TransportIOError",
    "ExitCode",
    "BootloaderType",
    "DeviceDescriptor",
    "DeviceInfo",
    "DeviceHandle",
    "Transport",
    "UsbTransport",
    "DeviceListing",
    "Client",
]


@dataclass(frozen=True)
class DeviceListing:
    """A connected bootloader and whether it holds a valid application."""

    device: DeviceDescriptor
    status: str


class Client:
    """Public client for flashing bootloaders from Python code.

    Each operation runs through the same validate-then-execute pipeline as
    the command line and closes the device before returning.
    """

    def __init__(
        self,
        *,
        transport: Transport | None = None,
        serial_number: str | None = None,
        echo: Callable[[str], None] | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        loaded = load_bootloader_types()
        self._types = loaded.sorted_types()
        self._load_warnings = loaded.warnings
        self._transport = transport or UsbTransport()
        self.serial_number = serial_number
        self._echo = echo or (lambda message: None)
        self._progress = progress

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._load_warnings

    def list_supported(self) -> list[BootloaderType]:
        return list(self._types)

    def list_devices(self) -> list[DeviceListing]:
        session = DeviceSession(
            self._transport,
            self._types,
            serial_number=self.serial_number,
            echo=self._echo,
        )
        try:
            return [
                DeviceListing(device=device, status=session.probe_status(device))
                for device in session.ensure_list()
            ]
        finally:
            session.close()

    def run(self, *tokens: str) -> None:
        """Run a raw command line, for example ``client.run("--erase", "--restart")``."""
        prefix = ("-d", self.serial_number) if self.serial_number else ()
        Orchestrator(
            self._transport,
            self._types,
            echo=self._echo,
            progress=self._progress,
        ).run([*prefix, *tokens])

    def write(
        self,
        path: str | Path,
        *,
        flash: bool = True,
        eeprom: bool = True,
        restart: bool = False,
    ) -> None:
        self.run(_region_flag("--write", flash, eeprom), str(path), *_restart(restart))

    def read(self, path: str | Path, *, flash: bool = True, eeprom: bool = True) -> None:
        self.run(_region_flag("--read", flash, eeprom), str(path))

    def erase(self, *, flash: bool = True, eeprom: bool = True, restart: bool = False) -> None:
        self.run(_region_flag("--erase", flash, eeprom), *_restart(restart))


def _region_flag(base: str, flash: bool, eeprom: bool) -> str:
    if flash and eeprom:
        return base
    if flash:
        return f"{base}-flash"
    if eeprom:
        return f"{base}-eeprom"
    raise BadArguments("At least one of flash or eeprom must be selected.")


def _restart(restart: bool) -> tuple[str, ...]:
    return ("--restart",) if restart else ()
