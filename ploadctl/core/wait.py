"""Bounded retry loop waiting for a bootloader to appear."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ploadctl.core.session import DeviceSession

DEFAULT_TIMEOUT_S = 10.0
DEFAULT_POLL_INTERVAL_S = 0.1
LOGGER = logging.getLogger(__name__)


class WaitPoller:
    def __init__(
        self,
        session: DeviceSession,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
        self._clock = clock
        self._sleep = sleep

    def wait_until_available(self) -> None:
        """Block until the session's device list is non-empty.

        Raises BootloaderNotFound once ``timeout_s`` has elapsed. The last
        sleep is shortened so the deadline is never overshot by more than
        one discovery.
        """
        deadline = self._clock() + self.timeout_s
        attempts = 0
        while True:
            self.session.invalidate_list()
            attempts += 1
            if self.session.ensure_list():
                LOGGER.debug("Bootloader appeared after %d attempts", attempts)
                return

            self.session.invalidate_list()
            remaining = deadline - self._clock()
            if remaining <= 0:
                LOGGER.debug("Gave up waiting after %d attempts", attempts)
                raise self.session.not_found()
            self._sleep(min(self.poll_interval_s, remaining))
