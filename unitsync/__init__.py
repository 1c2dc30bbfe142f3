"""
unitsync - Keep systemd units in step with a directory of unit files.

unitsync watches a source directory of unit files, mirrors them byte-for-byte
into systemd's unit directory and starts, restarts or stops units so that the
running system matches what is on disk:
- New unit file → copied and started
- Changed unit file → copied, daemon-reload and restart
- Removed unit file → stopped and its copy removed

Failed operations are retried on a short interval until they succeed.
"""

from .reconciler import Reconciler, sync_units
from .scheduler import EventScheduler
from .settings import UnitSyncSettings, get_settings, reload_settings
from .systemd import ServiceManager, Systemctl

__version__ = "0.1.0"
__all__ = [
    "EventScheduler",
    "Reconciler",
    "ServiceManager",
    "Systemctl",
    "UnitSyncSettings",
    "get_settings",
    "reload_settings",
    "sync_units",
]
