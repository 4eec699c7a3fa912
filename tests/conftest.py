from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest
from intelhex import IntelHex

from ploadctl.core.errors import TransportConnectError
from ploadctl.core.model import BootloaderType, DeviceDescriptor, MemoryLayout, UsbIds

TEST_TYPE = BootloaderType(
    id="test_loader",
    name="Test Bootloader",
    usb=UsbIds(vendor_id=0x1FFB, product_id=0x0101),
    memory=MemoryLayout(
        app_address=0x2000,
        app_size=0x100,
        write_block_size=0x40,
        eeprom_address=0x0,
        eeprom_address_hex_file=0xF00000,
        eeprom_size=0x20,
    ),
)


def make_device(serial: str, bootloader_type: BootloaderType = TEST_TYPE) -> DeviceDescriptor:
    return DeviceDescriptor(serial_number=serial, name=bootloader_type.name, bootloader_type=bootloader_type)


class FakeHandle:
    def __init__(self, transport: FakeTransport, device: DeviceDescriptor) -> None:
        memory = device.bootloader_type.memory
        self.transport = transport
        self.serial = device.serial_number
        self.flash = bytearray(b"\xff" * memory.app_size)
        self.eeprom = bytearray(b"\xff" * memory.eeprom_size)
        self.app_valid = False
        self.closed = True

    def _log(self, name: str) -> None:
        self.transport.calls.append((name, self.serial))

    def read_flash(self, progress=None) -> bytes:
        self._log("read_flash")
        if progress:
            progress("Reading flash...", len(self.flash), len(self.flash))
        return bytes(self.flash)

    def write_flash(self, data: bytes, progress=None) -> None:
        self._log("write_flash")
        assert len(data) == len(self.flash)
        self.flash[:] = data
        self.app_valid = True

    def read_eeprom(self, progress=None) -> bytes:
        self._log("read_eeprom")
        return bytes(self.eeprom)

    def write_eeprom(self, data: bytes, progress=None) -> None:
        self._log("write_eeprom")
        assert len(data) == len(self.eeprom)
        self.eeprom[:] = data

    def check_application(self) -> bool:
        self._log("check_application")
        return self.app_valid

    def restart(self) -> None:
        self._log("restart")

    def close(self) -> None:
        self._log("close")
        assert not self.closed
        self.closed = True
        self.transport.open_count -= 1


class FakeTransport:
    def __init__(self, devices: Sequence[DeviceDescriptor] = ()) -> None:
        self.devices = list(devices)
        self.handles = {device.serial_number: FakeHandle(self, device) for device in self.devices}
        self.calls: list[tuple[str, str]] = []
        self.list_calls = 0
        self.open_count = 0
        self.max_open = 0
        self.unreachable: set[str] = set()

    def list_devices(self, types) -> list[DeviceDescriptor]:
        self.list_calls += 1
        return list(self.devices)

    def open(self, device: DeviceDescriptor) -> FakeHandle:
        if device.serial_number in self.unreachable:
            raise TransportConnectError(f"Could not open bootloader {device.serial_number}")
        self.calls.append(("open", device.serial_number))
        handle = self.handles[device.serial_number]
        assert handle.closed
        handle.closed = False
        self.open_count += 1
        self.max_open = max(self.max_open, self.open_count)
        return handle

    def opened(self) -> list[str]:
        return [serial for name, serial in self.calls if name == "open"]

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def one_device() -> FakeTransport:
    return FakeTransport([make_device("12345678")])


@pytest.fixture
def no_device() -> FakeTransport:
    return FakeTransport()


@pytest.fixture(autouse=True)
def isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


@pytest.fixture
def make_hex(tmp_path: Path):
    def _make(name: str, data: dict[int, bytes]) -> Path:
        ih = IntelHex()
        for address, payload in data.items():
            ih.frombytes(payload, offset=address)
        path = tmp_path / name
        ih.write_hex_file(str(path))
        return path

    return _make
