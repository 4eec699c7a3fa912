"""Intel HEX reading and writing over memory region images."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from intelhex import IntelHex, IntelHexError

from ploadctl.core.errors import HexFileError
from ploadctl.core.model import MemoryImage

LOGGER = logging.getLogger(__name__)


def _region_for(regions: Sequence[MemoryImage], start: int, end: int) -> MemoryImage | None:
    for region in regions:
        if region.contains(start, end):
            return region
    return None


def read_hex(path: str | Path, regions: Sequence[MemoryImage]) -> None:
    """Load ``path`` into ``regions`` in place.

    Bytes the file does not specify keep whatever the images held before,
    normally the erased value. Data outside every region is rejected.
    """
    ih = IntelHex()
    try:
        ih.loadhex(str(path))
    except OSError as exc:
        reason = exc.strerror or str(exc)
        raise HexFileError(f"{path}: {reason}") from exc
    except (IntelHexError, UnicodeDecodeError) as exc:
        raise HexFileError(f"{path}: {exc}") from exc

    for start, end in ih.segments():
        region = _region_for(regions, start, end)
        if region is None:
            raise HexFileError(
                f"{path}: data at address 0x{start:X} is outside of the device's memory."
            )
        offset = start - region.start
        region.data[offset:offset + (end - start)] = ih.tobinarray(start=start, size=end - start)
        LOGGER.debug("Loaded %d bytes at 0x%X into %s", end - start, start, region.name)


def write_hex(stream: TextIO, regions: Sequence[MemoryImage], *, name: str = "<stream>") -> None:
    ih = IntelHex()
    for region in regions:
        ih.frombytes(bytes(region.data), offset=region.start)
    try:
        ih.write_hex_file(stream, write_start_addr=False)
    except OSError as exc:
        raise HexFileError(f"{name}: {exc.strerror or exc}") from exc
