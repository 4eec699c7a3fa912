"""Core data models used across loader, session, actions, and CLI."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

ERASED_BYTE = 0xFF

ProgressCallback = Callable[[str, int, int], None]


@dataclass(frozen=True)
class UsbIds:
    vendor_id: int
    product_id: int


@dataclass(frozen=True)
class MemoryLayout:
    app_address: int
    app_size: int
    write_block_size: int
    eeprom_address: int
    eeprom_address_hex_file: int
    eeprom_size: int


@dataclass(frozen=True)
class BootloaderType:
    id: str
    name: str
    usb: UsbIds
    memory: MemoryLayout


@dataclass(frozen=True)
class DeviceDescriptor:
    serial_number: str
    name: str
    bootloader_type: BootloaderType
    native: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class DeviceInfo:
    name: str
    serial_number: str
    app_address: int
    app_size: int
    eeprom_address: int
    eeprom_address_hex_file: int
    eeprom_size: int

    @classmethod
    def from_descriptor(cls, device: DeviceDescriptor) -> DeviceInfo:
        memory = device.bootloader_type.memory
        return cls(
            name=device.name,
            serial_number=device.serial_number,
            app_address=memory.app_address,
            app_size=memory.app_size,
            eeprom_address=memory.eeprom_address,
            eeprom_address_hex_file=memory.eeprom_address_hex_file,
            eeprom_size=memory.eeprom_size,
        )


@dataclass
class MemoryImage:
    """Bytes of one memory region, addressed as in a HEX file."""

    name: str
    start: int
    data: bytearray

    @classmethod
    def blank(cls, name: str, start: int, size: int) -> MemoryImage:
        return cls(name=name, start=start, data=bytearray([ERASED_BYTE]) * size)

    @property
    def end(self) -> int:
        return self.start + len(self.data)

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end
