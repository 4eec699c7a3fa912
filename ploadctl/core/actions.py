"""Queued command-line actions and the two-pass pipeline that runs them.

Every action goes through the same phases: construction, ``parse`` (consume
the tokens that follow its flag), ``prepare`` (load and validate inputs),
``execute`` (talk to the device) and ``release``. Phases an action does not
need are inherited no-ops. The pipeline prepares every queued action before
executing any of them, so a bad input for a later action stops the run
before the device is touched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import TextIO

from ploadctl.core.args import ArgReader
from ploadctl.core.errors import BadArguments, OperationFailed
from ploadctl.core.hex_codec import read_hex, write_hex
from ploadctl.core.model import MemoryImage, ProgressCallback
from ploadctl.core.regions import MemoryRegionMapper
from ploadctl.core.session import DeviceSession, Echo

LOGGER = logging.getLogger(__name__)


@dataclass
class ActionContext:
    session: DeviceSession
    echo: Echo
    progress: ProgressCallback | None = None


def _expect_filename(reader: ArgReader) -> str:
    filename = reader.next()
    if filename is None:
        raise BadArguments(f"Expected a filename after {reader.last()}.")
    return filename


def _require_filename(action: WriteAction | ReadAction) -> str:
    if action.filename is None:
        raise BadArguments(f"Expected a filename after {action.flag}.")
    return action.filename


class Action:
    def __init__(self, flag: str) -> None:
        self.flag = flag

    def parse(self, reader: ArgReader) -> None:
        pass

    def prepare(self, context: ActionContext) -> None:
        pass

    def execute(self, context: ActionContext) -> None:
        pass

    def release(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.flag!r})"


class ListDevicesAction(Action):
    def execute(self, context: ActionContext) -> None:
        session = context.session
        # The transport cannot enumerate while a handle is open on some platforms.
        session.close()
        session.invalidate_list()

        devices = session.ensure_list()
        for device in devices:
            status = session.probe_status(device)
            context.echo(f"{device.serial_number:<11}  {device.name:<40} {status:<15}".rstrip())

        if not devices:
            raise session.not_found(informational=True)


class ListSupportedAction(Action):
    def execute(self, context: ActionContext) -> None:
        context.echo("Supported bootloaders:")
        for bootloader_type in context.session.types:
            context.echo(bootloader_type.name)


class WriteAction(Action):
    """Write flash and/or EEPROM from a HEX file.

    Both regions are always loaded from the file so that it may contain data
    for either; only the selected regions are sent to the device.
    """

    def __init__(self, flag: str, *, flash: bool, eeprom: bool) -> None:
        super().__init__(flag)
        self.write_flash = flash
        self.write_eeprom = eeprom
        self.filename: str | None = None
        self.flash: MemoryImage | None = None
        self.eeprom: MemoryImage | None = None

    def parse(self, reader: ArgReader) -> None:
        self.filename = _expect_filename(reader)

    def _allocate_images(self, context: ActionContext) -> MemoryRegionMapper:
        mapper = MemoryRegionMapper(context.session.info())
        self.flash = mapper.blank_flash()
        self.eeprom = mapper.blank_eeprom()
        return mapper

    def prepare(self, context: ActionContext) -> None:
        filename = _require_filename(self)
        mapper = self._allocate_images(context)
        read_hex(filename, mapper.regions(self.flash, self.eeprom))

    def execute(self, context: ActionContext) -> None:
        if self.flash is None or self.eeprom is None:
            raise OperationFailed(f"{self.flag} was executed before it was prepared.")
        handle = context.session.ensure_handle()

        # TODO: erase flash, write EEPROM, then write flash, so the new
        # application cannot start before its EEPROM data is in place.
        if self.write_flash:
            handle.write_flash(bytes(self.flash.data), context.progress)
        if self.write_eeprom:
            handle.write_eeprom(bytes(self.eeprom.data), context.progress)

    def release(self) -> None:
        self.flash = None
        self.eeprom = None


class EraseAction(WriteAction):
    def parse(self, reader: ArgReader) -> None:
        pass

    def prepare(self, context: ActionContext) -> None:
        self._allocate_images(context)


class ReadAction(Action):
    def __init__(self, flag: str, *, flash: bool, eeprom: bool) -> None:
        super().__init__(flag)
        self.read_flash = flash
        self.read_eeprom = eeprom
        self.filename: str | None = None
        self._file: TextIO | None = None

    def parse(self, reader: ArgReader) -> None:
        self.filename = _expect_filename(reader)

    def prepare(self, context: ActionContext) -> None:
        filename = _require_filename(self)
        try:
            self._file = Path(filename).open("w", encoding="ascii")
        except OSError as exc:
            raise OperationFailed(f"{filename}: {exc.strerror or exc}") from exc

    def execute(self, context: ActionContext) -> None:
        if self._file is None:
            raise OperationFailed(f"{self.flag} was executed before it was prepared.")
        handle = context.session.ensure_handle()
        mapper = MemoryRegionMapper(context.session.info())

        flash = eeprom = None
        if self.read_flash:
            flash = mapper.flash_from_device(handle.read_flash(context.progress))
        if self.read_eeprom:
            eeprom = mapper.eeprom_from_device(handle.read_eeprom(context.progress))

        write_hex(self._file, mapper.regions(flash, eeprom), name=str(self.filename))
        self._file.flush()

    def release(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


ACTION_FLAGS: dict[str, Callable[[str], Action]] = {
    "--list": ListDevicesAction,
    "--list-supported": ListSupportedAction,
    "-w": partial(WriteAction, flash=True, eeprom=True),
    "--write": partial(WriteAction, flash=True, eeprom=True),
    "--write-flash": partial(WriteAction, flash=True, eeprom=False),
    "--write-eeprom": partial(WriteAction, flash=False, eeprom=True),
    "--erase": partial(EraseAction, flash=True, eeprom=True),
    "--erase-flash": partial(EraseAction, flash=True, eeprom=False),
    "--erase-eeprom": partial(EraseAction, flash=False, eeprom=True),
    "--read": partial(ReadAction, flash=True, eeprom=True),
    "--read-flash": partial(ReadAction, flash=True, eeprom=False),
    "--read-eeprom": partial(ReadAction, flash=False, eeprom=True),
}


class ActionPipeline:
    def __init__(self) -> None:
        self._actions: list[Action] = []
        self._prepared = False

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[Action]:
        return iter(self._actions)

    def append(self, action: Action, reader: ArgReader) -> None:
        # Queue first so the action is released even if parsing fails.
        self._actions.append(action)
        action.parse(reader)

    def run_prepare_pass(self, context: ActionContext) -> None:
        for action in self._actions:
            LOGGER.debug("Preparing %r", action)
            action.prepare(context)
        self._prepared = True

    def run_execute_pass(self, context: ActionContext) -> None:
        if not self._prepared:
            raise RuntimeError("run_prepare_pass must complete before run_execute_pass")
        for action in self._actions:
            LOGGER.debug("Executing %r", action)
            action.execute(context)

    def release_all(self) -> None:
        for action in self._actions:
            action.release()
