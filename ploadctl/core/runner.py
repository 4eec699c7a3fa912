"""Command-line parsing and the end-to-end run sequence."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from ploadctl.core.actions import ACTION_FLAGS, ActionContext, ActionPipeline
from ploadctl.core.args import ArgReader
from ploadctl.core.errors import BadArguments
from ploadctl.core.model import BootloaderType, ProgressCallback
from ploadctl.core.session import DeviceSession, Echo
from ploadctl.core.wait import DEFAULT_POLL_INTERVAL_S, DEFAULT_TIMEOUT_S, WaitPoller
from ploadctl.transports.base import Transport

LOGGER = logging.getLogger(__name__)


@dataclass
class Invocation:
    pipeline: ActionPipeline = field(default_factory=ActionPipeline)
    serial_number: str | None = None
    wait: bool = False
    restart: bool = False


def parse_command_line(tokens: Sequence[str], invocation: Invocation) -> Invocation:
    """Fill ``invocation`` from ``tokens``.

    Actions are queued in the order they appear. The invocation is filled in
    place so that actions queued before a parse error can still be released.
    """
    reader = ArgReader(tokens)
    while True:
        arg = reader.next()
        if arg is None:
            break

        if arg == "-d":
            if invocation.serial_number is not None:
                raise BadArguments("Serial number can only be specified once.")
            serial_number = reader.next()
            if serial_number is None:
                raise BadArguments(f"Expected a serial number after {arg}.")
            invocation.serial_number = serial_number
        elif arg == "--wait":
            invocation.wait = True
        elif arg == "--restart":
            invocation.restart = True
        elif arg in ACTION_FLAGS:
            invocation.pipeline.append(ACTION_FLAGS[arg](arg), reader)
            if arg == "-w":
                invocation.restart = True
        else:
            raise BadArguments(f"Unknown option: {arg}")
    return invocation


class Orchestrator:
    def __init__(
        self,
        transport: Transport,
        types: Sequence[BootloaderType],
        *,
        echo: Echo,
        warn: Echo | None = None,
        progress: ProgressCallback | None = None,
        wait_timeout_s: float = DEFAULT_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.transport = transport
        self.types = tuple(types)
        self.echo = echo
        self.warn = warn
        self.progress = progress
        self.wait_timeout_s = wait_timeout_s
        self.poll_interval_s = poll_interval_s
        self._clock = clock
        self._sleep = sleep

    def run(self, tokens: Sequence[str]) -> None:
        """Parse ``tokens`` and carry out the requested actions.

        Raises the first PloadError encountered. Action state is released and
        the device handle closed on every path.
        """
        invocation = Invocation()
        session: DeviceSession | None = None
        try:
            parse_command_line(tokens, invocation)
            LOGGER.debug(
                "Queued %d actions (serial=%s, wait=%s, restart=%s)",
                len(invocation.pipeline),
                invocation.serial_number,
                invocation.wait,
                invocation.restart,
            )
            session = DeviceSession(
                self.transport,
                self.types,
                serial_number=invocation.serial_number,
                echo=self.echo,
                warn=self.warn,
            )
            context = ActionContext(session=session, echo=self.echo, progress=self.progress)

            if invocation.wait:
                WaitPoller(
                    session,
                    timeout_s=self.wait_timeout_s,
                    poll_interval_s=self.poll_interval_s,
                    clock=self._clock,
                    sleep=self._sleep,
                ).wait_until_available()

            invocation.pipeline.run_prepare_pass(context)
            invocation.pipeline.run_execute_pass(context)

            if invocation.restart:
                session.restart()
        finally:
            invocation.pipeline.release_all()
            if session is not None:
                session.close()
