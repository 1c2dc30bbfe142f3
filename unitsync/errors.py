"""
unitsync errors - Exception hierarchy for the reconciliation daemon.
"""

from enum import Enum
from typing import Optional


class UnitSyncError(Exception):
    """Base exception for all unitsync errors."""
    pass


class ControlError(UnitSyncError):
    """Errors raised by a service manager call."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class WatcherError(UnitSyncError):
    """Terminal failure reported by the directory watcher."""
    pass


class ErrorKind(str, Enum):
    """Where in a reconciliation pass an error happened."""
    LISTING = "listing"   # Source directory could not be listed, pass aborted
    READ = "read"         # Source or destination file could not be read
    COPY = "copy"         # Destination file could not be written or removed
    CONTROL = "control"   # Service manager call failed or timed out
    FATAL = "fatal"       # Notification source failed, loop terminated


class SyncError(UnitSyncError):
    """A failure recorded during a reconciliation pass.

    Attributes:
        kind: Error category
        unit: Offending unit name (None when no unit is involved)
        operation: Short description of what was being attempted
        cause: Underlying exception
    """

    def __init__(
        self,
        kind: ErrorKind,
        operation: str,
        unit: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.kind = kind
        self.unit = unit
        self.operation = operation
        self.cause = cause
        super().__init__(str(self))

    @property
    def aborts(self) -> bool:
        """True when the whole pass was abandoned."""
        return self.kind in (ErrorKind.LISTING, ErrorKind.FATAL)

    @property
    def fatal(self) -> bool:
        return self.kind == ErrorKind.FATAL

    def __str__(self) -> str:
        target = f" {self.unit!r}" if self.unit else ""
        detail = f": {self.cause}" if self.cause else ""
        return f"error while {self.operation}{target}{detail}"
