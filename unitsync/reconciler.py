"""
Reconciler - Converges systemd units to the unit files in a source directory.

A pass compares three views of every unit:
- desired: the file in the source directory and its fingerprint
- recorded: the fingerprint last applied, kept in the reconciliation state
- actual: the copy in the destination directory and the unit's live status

and issues the smallest set of copy/start/restart/stop operations that makes
them agree. Failures are isolated per unit and leave the state entry stale so
that the next pass retries.
"""

import logging
import os
import stat
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import ControlError, ErrorKind, SyncError
from .fingerprint import copy_file, fingerprint, fingerprint_if_exists, is_editor_artifact
from .systemd import ServiceManager

logger = logging.getLogger(__name__)

# unit name -> fingerprint last applied to the service manager
ReconciliationState = Dict[str, str]


class PassResult:
    """Outcome of a single reconciliation pass."""

    def __init__(self) -> None:
        self.actions: List[Tuple[str, str]] = []  # (action, unit)
        self.errors: List[SyncError] = []

    @property
    def converged(self) -> bool:
        return not self.errors

    def record(self, action: str, unit: str) -> None:
        logger.info(f"{action} unit: {unit}")
        self.actions.append((action, unit))

    def fail(
        self,
        kind: ErrorKind,
        operation: str,
        unit: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        error = SyncError(kind, operation, unit=unit, cause=cause)
        logger.error(str(error))
        self.errors.append(error)


def sync_units(
    src: Path,
    dest: Path,
    state: ReconciliationState,
    manager: ServiceManager,
    result: Optional[PassResult] = None,
) -> bool:
    """Run one reconciliation pass.

    Args:
        src: Directory holding the desired unit files
        dest: Directory the service manager loads unit files from
        state: Reconciliation state, updated in place
        manager: Service manager used to start, stop and restart units
        result: Optional PassResult collecting actions and errors

    Returns:
        True if every unit was reconciled without error
    """
    if result is None:
        result = PassResult()
    src = Path(src)
    dest = Path(dest)

    try:
        entries = sorted(os.scandir(src), key=lambda e: e.name)
    except OSError as e:
        result.fail(ErrorKind.LISTING, "listing unit files", cause=e)
        return False

    for entry in entries:
        unit = entry.name
        if is_editor_artifact(unit):
            continue
        try:
            if entry.is_dir():
                continue
        except OSError:
            pass  # unreadable entries are reported by the fingerprint below
        _sync_unit(unit, src / unit, dest / unit, state, manager, result)

    for unit in list(state):
        try:
            if not stat.S_ISDIR(os.stat(src / unit).st_mode):
                continue  # file still exists
        except FileNotFoundError:
            pass
        except OSError as e:
            result.fail(ErrorKind.READ, "checking unit file", unit, e)
            continue
        # missing, or replaced by a directory the scan above skipped
        _remove_unit(unit, dest / unit, state, manager, result)

    return result.converged


def _sync_unit(
    unit: str,
    source: Path,
    target: Path,
    state: ReconciliationState,
    manager: ServiceManager,
    result: PassResult,
) -> None:
    try:
        checksum = fingerprint(source)
    except FileNotFoundError:
        return  # removed between the listing and now; cleanup handles it
    except OSError as e:
        result.fail(ErrorKind.READ, "reading unit file", unit, e)
        return

    try:
        current = fingerprint_if_exists(target)
    except OSError as e:
        result.fail(ErrorKind.READ, "reading current unit file", unit, e)
        return

    if checksum != current:
        try:
            copy_file(source, target)
        except OSError as e:
            result.fail(ErrorKind.COPY, "copying unit file", unit, e)
            return
        result.record("wrote", unit)

    recorded = state.get(unit)
    # An overwritten destination restarts unless the content was already
    # applied. A recorded fingerprint that lags the destination means an
    # earlier restart failed after its copy succeeded.
    if current is not None and current != checksum:
        needs_restart = checksum != recorded
    else:
        needs_restart = recorded is not None and recorded != checksum

    try:
        if needs_restart:
            manager.restart(unit)
            result.record("restarted", unit)
        elif manager.ensure_running(unit):
            result.record("started", unit)
    except ControlError as e:
        operation = "restarting" if needs_restart else "ensuring running"
        result.fail(ErrorKind.CONTROL, operation, unit, e)
        return

    state[unit] = checksum


def _remove_unit(
    unit: str,
    target: Path,
    state: ReconciliationState,
    manager: ServiceManager,
    result: PassResult,
) -> None:
    try:
        if manager.ensure_stopped(unit):
            result.record("stopped", unit)
    except ControlError as e:
        result.fail(ErrorKind.CONTROL, "stopping", unit, e)
        return

    try:
        target.unlink()
    except FileNotFoundError:
        pass  # already gone
    except OSError as e:
        result.fail(ErrorKind.COPY, "removing", unit, e)
        return
    else:
        result.record("removed", unit)

    del state[unit]


class Reconciler:
    """Owns the reconciliation state and runs passes against it.

    The state map is only ever touched from the thread calling sync().

    Attributes:
        src: Source directory of desired unit files
        dest: Destination directory read by the service manager
        manager: ServiceManager implementation
        state: Unit name -> last applied fingerprint
        last_result: PassResult of the most recent pass
    """

    def __init__(
        self,
        src: Path,
        dest: Path,
        manager: ServiceManager,
        state: Optional[ReconciliationState] = None,
    ):
        self.src = Path(src)
        self.dest = Path(dest)
        self.manager = manager
        self.state: ReconciliationState = {} if state is None else state
        self.last_result: Optional[PassResult] = None

    def sync(self) -> bool:
        """Run one pass and return whether it converged."""
        result = PassResult()
        converged = sync_units(self.src, self.dest, self.state, self.manager, result)
        self.last_result = result
        if converged:
            logger.debug(f"Pass converged with {len(result.actions)} action(s)")
        else:
            logger.warning(f"Pass failed with {len(result.errors)} error(s)")
        return converged
