"""Device-to-bootloader-type matching and serial number filtering."""

from __future__ import annotations

from collections.abc import Iterable

from ploadctl.core.model import BootloaderType, DeviceDescriptor


def type_for_usb_ids(
    vendor_id: int,
    product_id: int,
    types: Iterable[BootloaderType],
) -> BootloaderType | None:
    for bootloader_type in types:
        if bootloader_type.usb.vendor_id == vendor_id and bootloader_type.usb.product_id == product_id:
            return bootloader_type
    return None


def serial_matches(device: DeviceDescriptor, serial_number: str) -> bool:
    return device.serial_number == serial_number.strip()


def filter_by_serial_number(
    devices: Iterable[DeviceDescriptor],
    serial_number: str | None,
) -> list[DeviceDescriptor]:
    if serial_number is None:
        return list(devices)
    return [device for device in devices if serial_matches(device, serial_number)]
