"""USB bootloader transport implementation using pyusb.

The bootloader is driven entirely with vendor control transfers on endpoint 0.
Memory addresses are sent in ``wIndex`` with the bits above 16 in ``wValue``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import usb.core
import usb.util

from ploadctl.core.errors import DeviceDiscoveryError, TransportConnectError, TransportIOError
from ploadctl.core.model import ERASED_BYTE, BootloaderType, DeviceDescriptor, ProgressCallback

REQUEST_INITIALIZE = 0x80
REQUEST_ERASE_FLASH = 0x81
REQUEST_WRITE_FLASH_BLOCK = 0x82
REQUEST_GET_LAST_ERROR = 0x83
REQUEST_CHECK_APPLICATION = 0x84
REQUEST_READ_FLASH = 0x86
REQUEST_WRITE_EEPROM = 0x87
REQUEST_READ_EEPROM = 0x88
REQUEST_RESTART = 0xFE

VENDOR_OUT = usb.util.build_request_type(
    usb.util.CTRL_OUT, usb.util.CTRL_TYPE_VENDOR, usb.util.CTRL_RECIPIENT_DEVICE
)
VENDOR_IN = usb.util.build_request_type(
    usb.util.CTRL_IN, usb.util.CTRL_TYPE_VENDOR, usb.util.CTRL_RECIPIENT_DEVICE
)

READ_CHUNK_SIZE = 64
EEPROM_CHUNK_SIZE = 32
TIMEOUT_MS = 5000
LOGGER = logging.getLogger(__name__)


def _split_address(address: int) -> tuple[int, int]:
    return address >> 16, address & 0xFFFF


def _report(progress: ProgressCallback | None, status: str, done: int, total: int) -> None:
    if progress is not None:
        progress(status, done, total)


class UsbBootloaderHandle:
    def __init__(self, device: DeviceDescriptor) -> None:
        self.descriptor = device
        self.memory = device.bootloader_type.memory
        self._dev = device.native

    def _control_out(self, request: int, address: int = 0, data: bytes | None = None) -> None:
        value, index = _split_address(address)
        try:
            self._dev.ctrl_transfer(VENDOR_OUT, request, value, index, data, timeout=TIMEOUT_MS)
        except usb.core.USBError as exc:
            raise TransportIOError(
                f"Control transfer 0x{request:02X} to {self.descriptor.serial_number} failed: {exc}"
            ) from exc

    def _control_in(self, request: int, address: int, length: int) -> bytes:
        value, index = _split_address(address)
        try:
            data = self._dev.ctrl_transfer(VENDOR_IN, request, value, index, length, timeout=TIMEOUT_MS)
        except usb.core.USBError as exc:
            raise TransportIOError(
                f"Control transfer 0x{request:02X} from {self.descriptor.serial_number} failed: {exc}"
            ) from exc
        data = bytes(data)
        if len(data) != length:
            raise TransportIOError(
                f"Expected {length} bytes from request 0x{request:02X}, got {len(data)}"
            )
        return data

    def _check_last_error(self, operation: str) -> None:
        code = self._control_in(REQUEST_GET_LAST_ERROR, 0, 1)[0]
        if code:
            raise TransportIOError(f"Bootloader reported error {code} during {operation}")

    def _read_region(
        self,
        status: str,
        request: int,
        address: int,
        size: int,
        progress: ProgressCallback | None,
    ) -> bytes:
        chunks: list[bytes] = []
        for offset in range(0, size, READ_CHUNK_SIZE):
            length = min(READ_CHUNK_SIZE, size - offset)
            chunks.append(self._control_in(request, address + offset, length))
            _report(progress, status, offset + length, size)
        return b"".join(chunks)

    def read_flash(self, progress: ProgressCallback | None = None) -> bytes:
        return self._read_region(
            "Reading flash...",
            REQUEST_READ_FLASH,
            self.memory.app_address,
            self.memory.app_size,
            progress,
        )

    def read_eeprom(self, progress: ProgressCallback | None = None) -> bytes:
        return self._read_region(
            "Reading EEPROM...",
            REQUEST_READ_EEPROM,
            self.memory.eeprom_address,
            self.memory.eeprom_size,
            progress,
        )

    def write_flash(self, data: bytes, progress: ProgressCallback | None = None) -> None:
        size = self.memory.app_size
        if len(data) != size:
            raise TransportIOError(f"Flash image is {len(data)} bytes, expected {size}")

        self._control_out(REQUEST_INITIALIZE)
        _report(progress, "Erasing flash...", 0, size)
        self._control_out(REQUEST_ERASE_FLASH)
        self._check_last_error("flash erase")

        block_size = self.memory.write_block_size
        blank = bytes([ERASED_BYTE]) * block_size
        for offset in range(0, size, block_size):
            block = bytes(data[offset:offset + block_size])
            if block != blank:
                self._control_out(REQUEST_WRITE_FLASH_BLOCK, self.memory.app_address + offset, block)
            _report(progress, "Writing flash...", offset + block_size, size)
        self._check_last_error("flash write")

    def write_eeprom(self, data: bytes, progress: ProgressCallback | None = None) -> None:
        size = self.memory.eeprom_size
        if len(data) != size:
            raise TransportIOError(f"EEPROM image is {len(data)} bytes, expected {size}")

        for offset in range(0, size, EEPROM_CHUNK_SIZE):
            chunk = bytes(data[offset:offset + EEPROM_CHUNK_SIZE])
            self._control_out(REQUEST_WRITE_EEPROM, self.memory.eeprom_address + offset, chunk)
            _report(progress, "Writing EEPROM...", offset + len(chunk), size)
        self._check_last_error("EEPROM write")

    def check_application(self) -> bool:
        return self._control_in(REQUEST_CHECK_APPLICATION, 0, 1)[0] == 1

    def restart(self) -> None:
        LOGGER.debug("Restarting %s", self.descriptor.serial_number)
        self._control_out(REQUEST_RESTART)

    def close(self) -> None:
        usb.util.dispose_resources(self._dev)


class UsbTransport:
    def list_devices(self, types: Sequence[BootloaderType]) -> list[DeviceDescriptor]:
        devices: list[DeviceDescriptor] = []
        for bootloader_type in types:
            try:
                found = list(
                    usb.core.find(
                        find_all=True,
                        idVendor=bootloader_type.usb.vendor_id,
                        idProduct=bootloader_type.usb.product_id,
                    )
                )
            except usb.core.NoBackendError as exc:
                raise DeviceDiscoveryError(
                    "No USB backend available. Install libusb and retry."
                ) from exc
            except usb.core.USBError as exc:
                raise DeviceDiscoveryError(f"USB enumeration failed: {exc}") from exc

            for dev in found:
                devices.append(
                    DeviceDescriptor(
                        serial_number=_read_serial_number(dev),
                        name=bootloader_type.name,
                        bootloader_type=bootloader_type,
                        native=dev,
                    )
                )
        LOGGER.debug("USB enumeration found %d bootloaders", len(devices))
        return devices

    def open(self, device: DeviceDescriptor) -> UsbBootloaderHandle:
        if device.native is None:
            raise TransportConnectError(f"Device {device.serial_number} has no USB reference")
        try:
            device.native.get_active_configuration()
        except usb.core.USBError as exc:
            raise TransportConnectError(
                f"Could not open bootloader {device.serial_number}: {exc}"
            ) from exc
        LOGGER.debug("Opened %s (%s)", device.serial_number, device.name)
        return UsbBootloaderHandle(device)


def _read_serial_number(dev: usb.core.Device) -> str:
    try:
        return usb.util.get_string(dev, dev.iSerialNumber) or ""
    except (usb.core.USBError, ValueError) as exc:
        LOGGER.warning("Could not read serial number of USB device %04x:%04x: %s", dev.idVendor, dev.idProduct, exc)
        return ""
