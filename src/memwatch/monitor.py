"""Standalone tick driver for the memory watchdog."""

import logging
import threading
from queue import Queue

from memwatch.models import TickEvent, TickReport
from memwatch.watchdog import MemoryWatchdog

logger = logging.getLogger(__name__)


class WatchdogMonitor:
    """
    Drives a MemoryWatchdog without supervisord TICK events.

    Runs in a separate daemon thread, issues a synthetic TICK event every
    ``poll_rate`` seconds and pushes each TickReport to a thread-safe Queue.
    A single thread guarantees ticks never overlap.
    """

    def __init__(
        self,
        watchdog: MemoryWatchdog,
        update_queue: Queue[TickReport] | None = None,
        poll_rate: float = 60.0,
    ) -> None:
        """
        Initialize the WatchdogMonitor.

        Args:
            watchdog: The watchdog to tick.
            update_queue: Queue receiving one TickReport per completed tick.
            poll_rate: Seconds between ticks. Default 60s.
        """
        self._watchdog = watchdog
        self._queue = update_queue
        self._poll_rate = max(1.0, poll_rate)
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._ticks = 0

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(1.0, value)  # Minimum 1 second

    @property
    def ticks(self) -> int:
        """Number of ticks issued so far."""
        return self._ticks

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._wake_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="WatchdogMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            # A thread still mid-tick stays tracked so start() cannot overlap it
            if not self._thread.is_alive():
                self._thread = None

    def tick_now(self) -> None:
        """Ask the running thread to tick immediately instead of waiting."""
        self._wake_event.set()

    def join(self) -> None:
        """Block until the monitor thread exits."""
        if self._thread is not None:
            self._thread.join()

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            self.tick()

            # Wait for poll_rate seconds, an early tick request or stop
            self._wake_event.wait(timeout=self._poll_rate)
            self._wake_event.clear()

    def tick(self) -> TickReport | None:
        """Run one tick on the calling thread."""
        event = TickEvent(headers={"eventname": f"TICK_{int(self._poll_rate)}"})
        self._ticks += 1
        try:
            report = self._watchdog.handle(event)
        except Exception:
            # The loop must survive anything the watchdog lets through
            logger.exception("Tick %d failed", self._ticks)
            return None

        if report is not None and self._queue is not None:
            self._queue.put(report)
        return report
