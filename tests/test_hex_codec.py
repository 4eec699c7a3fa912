from __future__ import annotations

import io

import pytest
from intelhex import IntelHex

from ploadctl.core.errors import HexFileError
from ploadctl.core.hex_codec import read_hex, write_hex
from ploadctl.core.model import MemoryImage


def _regions() -> tuple[MemoryImage, MemoryImage]:
    return MemoryImage.blank("flash", 0x2000, 0x100), MemoryImage.blank("eeprom", 0xF00000, 0x20)


def test_read_fills_regions_and_leaves_gaps_erased(make_hex) -> None:
    path = make_hex("app.hex", {0x2004: b"\x01\x02\x03", 0xF00010: b"\xaa"})
    flash, eeprom = _regions()

    read_hex(path, (flash, eeprom))

    assert bytes(flash.data[:8]) == b"\xff\xff\xff\xff\x01\x02\x03\xff"
    assert eeprom.data[0x10] == 0xAA
    assert eeprom.data.count(0xFF) == 0x1F


def test_data_outside_regions_is_rejected(make_hex) -> None:
    path = make_hex("app.hex", {0x1000: b"\x01"})
    with pytest.raises(HexFileError) as exc:
        read_hex(path, _regions())
    assert "0x1000" in str(exc.value)


def test_data_overrunning_a_region_is_rejected(make_hex) -> None:
    path = make_hex("app.hex", {0x20FE: b"\x01\x02\x03\x04"})
    with pytest.raises(HexFileError):
        read_hex(path, _regions())


def test_missing_file_names_file_and_cause(tmp_path) -> None:
    path = tmp_path / "nope.hex"
    with pytest.raises(HexFileError) as exc:
        read_hex(path, _regions())
    assert "nope.hex" in str(exc.value)
    assert "No such file" in str(exc.value)


def test_malformed_file_is_rejected(tmp_path) -> None:
    path = tmp_path / "bad.hex"
    path.write_text(":10000000ZZ\n", encoding="ascii")
    with pytest.raises(HexFileError):
        read_hex(path, _regions())


def test_write_emits_every_region_byte_at_file_addresses() -> None:
    flash, eeprom = _regions()
    flash.data[0] = 0x42
    stream = io.StringIO()

    write_hex(stream, (flash, eeprom))

    stream.seek(0)
    ih = IntelHex()
    ih.loadhex(stream)
    assert ih.minaddr() == 0x2000
    assert ih.maxaddr() == 0xF0001F
    assert ih[0x2000] == 0x42
    assert ih[0x20FF] == 0xFF
    assert len(ih) == 0x100 + 0x20


def test_non_ascii_file_is_a_hex_file_error(tmp_path) -> None:
    path = tmp_path / "binary.hex"
    path.write_bytes(b":\xff\xfe\x00garbage\n")
    with pytest.raises(HexFileError) as exc:
        read_hex(path, _regions())
    assert "binary.hex" in str(exc.value)
