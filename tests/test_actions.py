from __future__ import annotations

import pytest

from conftest import FakeTransport, TEST_TYPE, make_device
from ploadctl.core.actions import (
    ACTION_FLAGS,
    Action,
    ActionContext,
    ActionPipeline,
    EraseAction,
    ReadAction,
    WriteAction,
)
from ploadctl.core.args import ArgReader
from ploadctl.core.errors import BadArguments, HexFileError, OperationFailed
from ploadctl.core.session import DeviceSession


def _context(transport: FakeTransport) -> ActionContext:
    echoed: list[str] = []
    session = DeviceSession(transport, [TEST_TYPE], echo=echoed.append)
    return ActionContext(session=session, echo=echoed.append)


class RecordingAction(Action):
    def __init__(self, flag: str, log: list[tuple[str, str]], *, fail_prepare: bool = False) -> None:
        super().__init__(flag)
        self.log = log
        self.fail_prepare = fail_prepare

    def prepare(self, context: ActionContext) -> None:
        self.log.append(("prepare", self.flag))
        if self.fail_prepare:
            raise HexFileError(f"{self.flag}: bad input")

    def execute(self, context: ActionContext) -> None:
        self.log.append(("execute", self.flag))

    def release(self) -> None:
        self.log.append(("release", self.flag))


def test_prepare_failure_stops_before_any_execute() -> None:
    log: list[tuple[str, str]] = []
    pipeline = ActionPipeline()
    reader = ArgReader([])
    pipeline.append(RecordingAction("a", log), reader)
    pipeline.append(RecordingAction("b", log, fail_prepare=True), reader)
    pipeline.append(RecordingAction("c", log), reader)
    context = _context(FakeTransport())

    with pytest.raises(HexFileError):
        pipeline.run_prepare_pass(context)
    pipeline.release_all()

    assert log == [
        ("prepare", "a"),
        ("prepare", "b"),
        ("release", "a"),
        ("release", "b"),
        ("release", "c"),
    ]


def test_execute_pass_requires_completed_prepare_pass() -> None:
    pipeline = ActionPipeline()
    pipeline.append(RecordingAction("a", []), ArgReader([]))
    with pytest.raises(RuntimeError):
        pipeline.run_execute_pass(_context(FakeTransport()))


def test_actions_execute_in_insertion_order() -> None:
    log: list[tuple[str, str]] = []
    pipeline = ActionPipeline()
    for flag in ("first", "second", "third"):
        pipeline.append(RecordingAction(flag, log), ArgReader([]))
    context = _context(FakeTransport())

    pipeline.run_prepare_pass(context)
    pipeline.run_execute_pass(context)

    assert [flag for phase, flag in log if phase == "execute"] == ["first", "second", "third"]


def test_missing_filename_is_bad_arguments_and_action_is_still_queued() -> None:
    reader = ArgReader(["--write"])
    flag = reader.next()
    pipeline = ActionPipeline()

    with pytest.raises(BadArguments) as exc:
        pipeline.append(ACTION_FLAGS[flag](flag), reader)

    assert "Expected a filename after --write." in str(exc.value)
    assert len(pipeline) == 1


def test_erase_prepares_blank_images_sized_to_device(one_device: FakeTransport) -> None:
    action = EraseAction("--erase", flash=True, eeprom=True)
    action.prepare(_context(one_device))

    assert action.flash is not None and action.eeprom is not None
    assert len(action.flash.data) == TEST_TYPE.memory.app_size
    assert set(action.flash.data) == {0xFF}
    assert action.flash.start == TEST_TYPE.memory.app_address
    assert len(action.eeprom.data) == TEST_TYPE.memory.eeprom_size
    assert set(action.eeprom.data) == {0xFF}
    assert action.eeprom.start == TEST_TYPE.memory.eeprom_address_hex_file


def test_erase_flash_only_writes_blank_flash(one_device: FakeTransport) -> None:
    handle = one_device.handles["12345678"]
    handle.flash[:4] = b"\x01\x02\x03\x04"
    handle.eeprom[:1] = b"\x05"
    context = _context(one_device)
    pipeline = ActionPipeline()
    pipeline.append(ACTION_FLAGS["--erase-flash"]("--erase-flash"), ArgReader([]))

    pipeline.run_prepare_pass(context)
    pipeline.run_execute_pass(context)

    assert set(handle.flash) == {0xFF}
    assert handle.eeprom[0] == 0x05
    assert "write_eeprom" not in one_device.call_names()


def test_write_flash_loads_file_but_sends_only_flash(one_device: FakeTransport, make_hex) -> None:
    path = make_hex("app.hex", {0x2000: b"\xde\xad\xbe\xef", 0xF00000: b"\x11\x22"})
    reader = ArgReader([str(path)])
    action = WriteAction("--write-flash", flash=True, eeprom=False)
    action.parse(reader)
    context = _context(one_device)

    action.prepare(context)
    assert action.eeprom is not None
    assert bytes(action.eeprom.data[:2]) == b"\x11\x22"

    action.execute(context)
    handle = one_device.handles["12345678"]
    assert bytes(handle.flash[:4]) == b"\xde\xad\xbe\xef"
    assert set(handle.flash[4:]) == {0xFF}
    assert set(handle.eeprom) == {0xFF}
    assert one_device.call_names().count("write_flash") == 1


def test_combined_write_sends_flash_before_eeprom(one_device: FakeTransport, make_hex) -> None:
    path = make_hex("app.hex", {0x2000: b"\x01", 0xF00000: b"\x02"})
    action = WriteAction("--write", flash=True, eeprom=True)
    action.parse(ArgReader([str(path)]))
    context = _context(one_device)

    action.prepare(context)
    action.execute(context)

    names = one_device.call_names()
    assert names.index("write_flash") < names.index("write_eeprom")


def test_read_prepare_fails_for_unwritable_path(one_device: FakeTransport, tmp_path) -> None:
    action = ReadAction("--read", flash=True, eeprom=True)
    action.parse(ArgReader([str(tmp_path / "missing-dir" / "out.hex")]))

    with pytest.raises(OperationFailed) as exc:
        action.prepare(_context(one_device))

    assert "out.hex" in str(exc.value)


def test_release_all_is_idempotent_and_closes_output(one_device: FakeTransport, tmp_path) -> None:
    pipeline = ActionPipeline()
    action = ReadAction("--read-flash", flash=True, eeprom=False)
    pipeline.append(action, ArgReader([str(tmp_path / "out.hex")]))
    pipeline.run_prepare_pass(_context(one_device))
    output = action._file
    assert output is not None

    pipeline.release_all()
    pipeline.release_all()

    assert output.closed
    assert action._file is None


def test_list_devices_reports_status_and_closes_cached_handle() -> None:
    transport = FakeTransport([make_device("11111111"), make_device("22222222")])
    transport.handles["22222222"].app_valid = True
    echoed: list[str] = []
    session = DeviceSession(transport, [TEST_TYPE], serial_number="11111111", echo=echoed.append)
    session.ensure_handle()
    session.serial_number = None
    context = ActionContext(session=session, echo=echoed.append)

    ACTION_FLAGS["--list"]("--list").execute(context)

    assert not session.is_open
    assert transport.max_open == 1
    assert any(line.startswith("11111111") and line.endswith("No app present") for line in echoed)
    assert any(line.startswith("22222222") and line.endswith("App present") for line in echoed)


def test_list_supported_prints_type_names(no_device: FakeTransport) -> None:
    context = _context(no_device)
    echoed: list[str] = []
    context.echo = echoed.append

    ACTION_FLAGS["--list-supported"]("--list-supported").execute(context)

    assert echoed == ["Supported bootloaders:", "Test Bootloader"]
    assert no_device.list_calls == 0


def test_write_execute_without_prepare_is_operation_failed(one_device: FakeTransport) -> None:
    action = WriteAction("--write", flash=True, eeprom=True)
    with pytest.raises(OperationFailed) as exc:
        action.execute(_context(one_device))
    assert "--write" in str(exc.value)
    assert "write_flash" not in one_device.call_names()


def test_read_prepare_without_filename_is_bad_arguments(one_device: FakeTransport) -> None:
    action = ReadAction("--read", flash=True, eeprom=True)
    with pytest.raises(BadArguments) as exc:
        action.prepare(_context(one_device))
    assert str(exc.value) == "Expected a filename after --read."


def test_read_execute_without_prepare_is_operation_failed(one_device: FakeTransport) -> None:
    action = ReadAction("--read-flash", flash=True, eeprom=False)
    action.parse(ArgReader(["out.hex"]))
    with pytest.raises(OperationFailed):
        action.execute(_context(one_device))
    assert "read_flash" not in one_device.call_names()
