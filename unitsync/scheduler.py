"""
Event scheduler - Decides when the reconciler runs.

Directory notifications and a single-shot timer are merged into one loop.
Exactly one pass is pending at any time: a notification pulls it forward to
"now", and the outcome of each pass picks how far away the next one is.
"""

import logging
import queue
import time
from datetime import timedelta
from typing import Callable, Protocol, Union

from watchdog.events import FileSystemEvent

from .errors import ErrorKind, SyncError, WatcherError
from .watcher import WatcherClosed, WatcherItem, is_relevant

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    def get(self, timeout: float) -> WatcherItem: ...


def _seconds(value: Union[timedelta, float]) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class EventScheduler:
    """Single-threaded loop driving a reconcile callable.

    Args:
        watcher: Event source, normally a started DirectoryWatcher
        reconcile: Callable running one pass and returning True when converged
        resync: Delay before the next pass after a converged pass
        retry: Delay before the next pass after a failed pass
        clock: Monotonic clock, replaceable in tests
    """

    def __init__(
        self,
        watcher: EventSource,
        reconcile: Callable[[], bool],
        resync: Union[timedelta, float] = timedelta(hours=1),
        retry: Union[timedelta, float] = timedelta(seconds=1),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.watcher = watcher
        self.reconcile = reconcile
        self.resync = _seconds(resync)
        self.retry = _seconds(retry)
        self._clock = clock
        self.passes = 0
        # Immediate first pass
        self._deadline = self._clock()

    def reset(self, delay: float) -> None:
        """Re-arm the single pending pass to fire after delay seconds."""
        self._deadline = self._clock() + delay

    def run(self) -> None:
        """Run until the watcher closes.

        Raises:
            SyncError: Tagged ErrorKind.FATAL when the watcher reports a
                terminal failure; the WatcherError is its cause
        """
        logger.info("Scheduler loop started")
        while True:
            timeout = max(0.0, self._deadline - self._clock())
            try:
                item = self.watcher.get(timeout=timeout)
            except queue.Empty:
                self._fire()
                continue

            if isinstance(item, WatcherClosed):
                logger.info("Scheduler loop stopped")
                return
            if isinstance(item, WatcherError):
                raise SyncError(ErrorKind.FATAL, "watching unit files", cause=item) from item
            if isinstance(item, FileSystemEvent) and is_relevant(item):
                # Queued events drain before the pass runs, so a burst
                # collapses into one pass.
                self.reset(0.0)

    def _fire(self) -> None:
        self.passes += 1
        converged = self.reconcile()
        delay = self.resync if converged else self.retry
        logger.debug(f"Next pass in {delay:g}s")
        self.reset(delay)
