"""
unitsync daemon - Wires the watcher, scheduler and reconciler together.
"""

import logging
import signal
import threading
from typing import Optional

from .reconciler import Reconciler
from .scheduler import EventScheduler
from .settings import UnitSyncSettings
from .systemd import ServiceManager, Systemctl
from .watcher import DirectoryWatcher

logger = logging.getLogger(__name__)


class UnitSyncDaemon:
    """Keeps the destination directory and systemd in step with the source.

    Attributes:
        settings: Resolved configuration
        reconciler: Reconciler owning the in-memory state
        watcher: DirectoryWatcher on the source directory (set by run())
    """

    def __init__(self, settings: UnitSyncSettings, manager: Optional[ServiceManager] = None):
        self.settings = settings
        if manager is None:
            manager = Systemctl(timeout=settings.timeout, binary=settings.systemctl)
        self.reconciler = Reconciler(settings.src, settings.dest, manager)
        self.watcher: Optional[DirectoryWatcher] = None

    def run(self) -> None:
        """Watch the source directory and reconcile until stopped.

        Raises:
            SyncError: Tagged ErrorKind.FATAL if the directory watcher fails
            OSError: If the source directory cannot be created or watched
        """
        self.settings.src.mkdir(parents=True, exist_ok=True)
        self.watcher = DirectoryWatcher(self.settings.src)
        self._install_signal_handlers()

        logger.info(
            f"unitsync started: src={self.settings.src} dest={self.settings.dest} "
            f"resync={self.settings.resync} retry={self.settings.retry}"
        )
        with self.watcher:
            scheduler = EventScheduler(
                self.watcher,
                self.reconciler.sync,
                resync=self.settings.resync,
                retry=self.settings.retry,
            )
            scheduler.run()

    def stop(self) -> None:
        if self.watcher is not None:
            self.watcher.close()

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, signum: int, frame) -> None:
        """Handle shutdown signals gracefully."""
        signal_name = signal.Signals(signum).name
        logger.info(f"Received signal {signal_name}, initiating graceful shutdown...")
        # close() takes the queue lock that the interrupted get() may be holding
        threading.Thread(target=self.stop, name="unitsync-shutdown", daemon=True).start()
