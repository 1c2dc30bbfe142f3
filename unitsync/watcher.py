"""
Directory watcher - Adapts watchdog's threaded observer to a single consumer.

The observer thread only enqueues events. The scheduler drains the queue from
its own thread, so reconciliation never runs on watchdog's thread.
"""

import logging
import queue
import threading
from pathlib import Path
from typing import Optional, Union

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .errors import WatcherError

logger = logging.getLogger(__name__)

RELEVANT_EVENT_TYPES = frozenset({
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MOVED,
})


class WatcherClosed:
    """Sentinel queued once the watcher has been closed."""

    def __repr__(self) -> str:
        return "WatcherClosed"


CLOSED = WatcherClosed()

WatcherItem = Union[FileSystemEvent, WatcherClosed, WatcherError]


def is_relevant(event: FileSystemEvent) -> bool:
    """True for create, write, remove and rename events.

    The inotify backend reports attribute changes (chmod, touch) as
    modifications too, so those still trigger a pass; it finds nothing to do.
    """
    return event.event_type in RELEVANT_EVENT_TYPES


class DirectoryWatcher(FileSystemEventHandler):
    """Watches a single directory (non-recursively) for unit file changes.

    get() returns the next event, the CLOSED sentinel after close(), or a
    WatcherError if the observer thread died on its own. It raises
    queue.Empty when nothing arrived before the timeout.
    """

    # How often a blocked get() checks that the observer is still alive
    liveness_interval = 1.0

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._queue: "queue.Queue[WatcherItem]" = queue.Queue()
        self._observer = Observer()
        self._observer.daemon = True
        self._closed = threading.Event()
        self._failed = False

    def start(self) -> "DirectoryWatcher":
        self._observer.schedule(self, str(self.path), recursive=False)
        self._observer.start()
        logger.info(f"Watching {self.path} for unit file changes")
        return self

    def close(self) -> None:
        """Stop the observer and queue the CLOSED sentinel. Idempotent."""
        if self._closed.is_set():
            return
        self._closed.set()
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=5)
        self._queue.put(CLOSED)
        logger.info("Directory watcher closed")

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def on_any_event(self, event: FileSystemEvent) -> None:
        if self._closed.is_set():
            return
        logger.debug(f"Detected {event.event_type}: {event.src_path}")
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> WatcherItem:
        """Return the next queued item, waiting at most timeout seconds.

        Raises:
            queue.Empty: If the timeout elapsed with nothing queued
        """
        remaining = timeout
        while True:
            wait = self.liveness_interval if remaining is None else min(remaining, self.liveness_interval)
            try:
                return self._queue.get(timeout=max(0.0, wait))
            except queue.Empty:
                if self._observer_died():
                    return WatcherError(f"observer for {self.path} stopped unexpectedly")
                if remaining is not None:
                    remaining -= wait
                    if remaining <= 0:
                        raise

    def _observer_died(self) -> bool:
        if self._failed or self._closed.is_set():
            return False
        if self._observer.ident is not None and not self._observer.is_alive():
            self._failed = True
            return True
        return False

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
