"""Device discovery, selection, and the single open bootloader handle."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from ploadctl.core.device_match import filter_by_serial_number
from ploadctl.core.errors import (
    BootloaderNotFound,
    DeviceDiscoveryError,
    DeviceSelectionError,
    OperationFailed,
)
from ploadctl.core.model import BootloaderType, DeviceDescriptor, DeviceInfo
from ploadctl.transports.base import DeviceHandle, Transport

LOGGER = logging.getLogger(__name__)

Echo = Callable[[str], None]


def _log_echo(message: str) -> None:
    LOGGER.info(message)


def _log_warn(message: str) -> None:
    LOGGER.warning(message)


class DeviceSession:
    """Owns the cached device list and at most one open handle.

    The list is created on first need and can be invalidated; the handle is
    opened lazily from the list when exactly one bootloader qualifies.
    """

    def __init__(
        self,
        transport: Transport,
        types: Sequence[BootloaderType],
        *,
        serial_number: str | None = None,
        echo: Echo | None = None,
        warn: Echo | None = None,
    ) -> None:
        self.transport = transport
        self.types = tuple(types)
        self.serial_number = serial_number
        self.echo = echo or _log_echo
        self.warn = warn or _log_warn
        self._devices: list[DeviceDescriptor] | None = None
        self._handle: DeviceHandle | None = None
        self._device: DeviceDescriptor | None = None

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def ensure_list(self) -> list[DeviceDescriptor]:
        if self._devices is not None:
            return self._devices

        try:
            discovered = self.transport.list_devices(self.types)
        except DeviceDiscoveryError:
            raise
        except OperationFailed as exc:
            raise DeviceDiscoveryError(f"Bootloader discovery failed: {exc}") from exc

        self._devices = filter_by_serial_number(discovered, self.serial_number)
        LOGGER.debug(
            "Discovered %d bootloaders, %d after serial number filter",
            len(discovered),
            len(self._devices),
        )
        return self._devices

    def invalidate_list(self) -> None:
        self._devices = None

    def not_found(self, *, informational: bool = False) -> BootloaderNotFound:
        if self.serial_number is not None:
            message = f"No bootloader found with serial number '{self.serial_number}'."
        else:
            message = "No bootloader found."
        return BootloaderNotFound(message, informational=informational)

    def ensure_handle(self) -> DeviceHandle:
        if self._handle is not None:
            return self._handle

        devices = self.ensure_list()
        if not devices:
            raise self.not_found()

        if len(devices) > 1:
            raise DeviceSelectionError(
                "There are multiple qualifying bootloaders connected to this computer.\n"
                "Use the -d option to specify which bootloader you want to use, or disconnect\n"
                "the others."
            )

        device = devices[0]
        self._handle = self.transport.open(device)
        self._device = device
        info = DeviceInfo.from_descriptor(device)
        self.echo(f"Bootloader:    {info.name}")
        self.echo(f"Serial number: {info.serial_number}")
        return self._handle

    def info(self) -> DeviceInfo:
        self.ensure_handle()
        if self._device is None:
            raise OperationFailed("No bootloader is open.")
        return DeviceInfo.from_descriptor(self._device)

    def restart(self) -> None:
        self.ensure_handle().restart()

    def probe_status(self, device: DeviceDescriptor) -> str:
        """Open ``device`` briefly and describe whether it holds an application."""
        if self._handle is not None:
            raise OperationFailed("Cannot probe a bootloader while another one is open.")
        try:
            handle = self.transport.open(device)
        except OperationFailed as exc:
            LOGGER.debug("Probe open of %s failed: %s", device.serial_number, exc)
            self.warn("Warning: Unable to connect to bootloader.")
            return "?"
        try:
            app_valid = handle.check_application()
        except OperationFailed as exc:
            LOGGER.debug("Application check of %s failed: %s", device.serial_number, exc)
            self.warn("Warning: Unable to check application.")
            return "?"
        finally:
            handle.close()
        return "App present" if app_valid else "No app present"

    def close(self) -> None:
        if self._handle is None:
            return
        handle, self._handle, self._device = self._handle, None, None
        handle.close()
        LOGGER.debug("Closed bootloader handle")
