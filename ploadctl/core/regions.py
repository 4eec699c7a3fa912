"""Mapping between a bootloader's reported memory layout and image buffers.

Images are addressed the way the HEX file addresses them. For flash that is
also the device-side address; EEPROM has its own HEX-file base address
(``eeprom_address_hex_file``) which differs from the address the bootloader
uses internally (``eeprom_address``). Only the transport deals with the
latter.
"""

from __future__ import annotations

from ploadctl.core.errors import OperationFailed
from ploadctl.core.model import DeviceInfo, MemoryImage

FLASH = "flash"
EEPROM = "eeprom"


class MemoryRegionMapper:
    def __init__(self, info: DeviceInfo) -> None:
        self.info = info

    def blank_flash(self) -> MemoryImage:
        return MemoryImage.blank(FLASH, self.info.app_address, self.info.app_size)

    def blank_eeprom(self) -> MemoryImage:
        return MemoryImage.blank(EEPROM, self.info.eeprom_address_hex_file, self.info.eeprom_size)

    def flash_from_device(self, data: bytes) -> MemoryImage:
        return self._from_device(FLASH, self.info.app_address, self.info.app_size, data)

    def eeprom_from_device(self, data: bytes) -> MemoryImage:
        return self._from_device(
            EEPROM, self.info.eeprom_address_hex_file, self.info.eeprom_size, data
        )

    @staticmethod
    def _from_device(name: str, start: int, size: int, data: bytes) -> MemoryImage:
        if len(data) != size:
            raise OperationFailed(
                f"Device returned {len(data)} bytes of {name}, expected {size}."
            )
        return MemoryImage(name=name, start=start, data=bytearray(data))

    @staticmethod
    def regions(
        flash: MemoryImage | None = None,
        eeprom: MemoryImage | None = None,
    ) -> tuple[MemoryImage, ...]:
        """Return the present images in codec order: flash first, then EEPROM."""
        return tuple(image for image in (flash, eeprom) if image is not None)
