"""supervisord event listener loop."""

import logging
import sys
from typing import TextIO

from supervisor import childutils

from memwatch.models import TickEvent
from memwatch.watchdog import MemoryWatchdog

logger = logging.getLogger(__name__)


class EventListener:
    """
    Feeds supervisord events to a MemoryWatchdog.

    Speaks the event listener protocol on ``stdin``/``stdout``: signal READY,
    read one event, hand it to the watchdog, acknowledge with OK or FAIL.
    Subscribe the listener to ``TICK_60`` (or another TICK_* event) in the
    supervisord ``[eventlistener:x]`` section.
    """

    def __init__(
        self,
        watchdog: MemoryWatchdog,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self._watchdog = watchdog
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout

    def listen_once(self) -> bool:
        """
        Handle a single event.

        Returns False when the event stream is closed.
        """
        try:
            headers, payload = childutils.listener.wait(self._stdin, self._stdout)
        except (KeyError, ValueError):
            # readline() returned an empty or truncated header line
            logger.info("Event stream closed")
            return False

        event = TickEvent(headers=headers, payload=payload)
        logger.debug("Received %s", event.name)
        try:
            status = self._watchdog.on_tick(event)
        except Exception:
            logger.exception("Handling %s failed", event.name)
            status = 1

        if status == 0:
            childutils.listener.ok(self._stdout)
        else:
            childutils.listener.fail(self._stdout)
        return True

    def listen(self) -> None:
        """Handle events until supervisord closes the stream."""
        while self.listen_once():
            pass
