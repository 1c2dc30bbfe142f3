"""
Pytest configuration and fixtures for unitsync tests.
"""

import tempfile
from pathlib import Path
from typing import List, Set, Tuple

import pytest

from unitsync.errors import ControlError
from unitsync.systemd import ServiceManager


class FakeServiceManager(ServiceManager):
    """In-memory service manager recording every call.

    calls holds every invocation, actions only those that changed a unit.
    Units listed in failures[op] raise ControlError for that operation.
    """

    def __init__(self) -> None:
        self.active: Set[str] = set()
        self.calls: List[Tuple[str, str]] = []
        self.actions: List[Tuple[str, str]] = []
        self.failures: dict = {"ensure_running": set(), "ensure_stopped": set(), "restart": set()}

    def _check(self, op: str, unit: str) -> None:
        self.calls.append((op, unit))
        if unit in self.failures[op]:
            raise ControlError(f"{op} {unit} failed")

    def ensure_running(self, unit: str) -> bool:
        self._check("ensure_running", unit)
        if unit in self.active:
            return False
        self.active.add(unit)
        self.actions.append(("start", unit))
        return True

    def ensure_stopped(self, unit: str) -> bool:
        self._check("ensure_stopped", unit)
        if unit not in self.active:
            return False
        self.active.discard(unit)
        self.actions.append(("stop", unit))
        return True

    def restart(self, unit: str) -> None:
        self._check("restart", unit)
        self.active.add(unit)
        self.actions.append(("restart", unit))

    @property
    def last_call(self) -> Tuple[str, str]:
        return self.calls[-1]


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def src_dir(temp_dir):
    path = temp_dir / "src"
    path.mkdir()
    return path


@pytest.fixture
def dest_dir(temp_dir):
    path = temp_dir / "dest"
    path.mkdir()
    return path


@pytest.fixture
def manager():
    return FakeServiceManager()
