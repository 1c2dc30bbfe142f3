"""
Service manager control interface.

The reconciler only depends on the abstract ServiceManager. Systemctl drives
a real systemd instance through the systemctl binary; every call is bounded
by a single deadline shared across the subprocesses it spawns.
"""

import abc
import logging
import subprocess
import time
from datetime import timedelta
from typing import List, Union

from .errors import ControlError

logger = logging.getLogger(__name__)


class ServiceManager(abc.ABC):
    """Abstract base class for the start/stop/restart capability set."""

    @abc.abstractmethod
    def ensure_running(self, unit: str) -> bool:
        """Start the unit unless it is already active.

        Returns:
            True if a start was issued, False if the unit was already active

        Raises:
            ControlError: If the service manager call fails or times out
        """
        pass

    @abc.abstractmethod
    def ensure_stopped(self, unit: str) -> bool:
        """Stop the unit unless it is already inactive.

        Returns:
            True if a stop was issued, False if the unit was already inactive

        Raises:
            ControlError: If the service manager call fails or times out
        """
        pass

    @abc.abstractmethod
    def restart(self, unit: str) -> None:
        """Reload the manager configuration, then restart the unit.

        Raises:
            ControlError: If the service manager call fails or times out
        """
        pass


class Systemctl(ServiceManager):
    """ServiceManager backed by the systemctl command line tool."""

    def __init__(
        self,
        timeout: Union[timedelta, float] = timedelta(seconds=10),
        binary: str = "systemctl",
    ):
        if isinstance(timeout, timedelta):
            timeout = timeout.total_seconds()
        self.timeout = float(timeout)
        self.binary = binary

    def restart(self, unit: str) -> None:
        deadline = self._deadline()
        self._exec(deadline, "daemon-reload")
        self._exec(deadline, "restart", "--", unit)

    def ensure_running(self, unit: str) -> bool:
        deadline = self._deadline()
        if self._is_active(deadline, unit):
            return False  # already running
        self._exec(deadline, "restart", "--", unit)
        return True

    def ensure_stopped(self, unit: str) -> bool:
        deadline = self._deadline()
        if not self._is_active(deadline, unit):
            return False  # already stopped
        self._exec(deadline, "stop", "--", unit)
        return True

    def _deadline(self) -> float:
        return time.monotonic() + self.timeout

    def _remaining(self, deadline: float, args: List[str]) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ControlError(
                f"systemctl {' '.join(args)} timed out after {self.timeout:g}s"
            )
        return remaining

    def _run(self, deadline: float, args: List[str]) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self._remaining(deadline, args),
            )
        except subprocess.TimeoutExpired as e:
            raise ControlError(
                f"systemctl {' '.join(args)} timed out after {self.timeout:g}s", e
            ) from e
        except OSError as e:
            raise ControlError(f"systemctl error: {e}", e) from e

    def _is_active(self, deadline: float, unit: str) -> bool:
        return self._run(deadline, ["is-active", "--quiet", "--", unit]).returncode == 0

    def _exec(self, deadline: float, *args: str) -> None:
        result = self._run(deadline, list(args))
        if result.returncode == 0:
            return
        output = result.stdout.decode(errors="replace").strip() if result.stdout else ""
        cause = subprocess.CalledProcessError(result.returncode, result.args, result.stdout)
        if output:
            raise ControlError(f"systemctl error msg: {output}", cause)
        raise ControlError(f"systemctl error: {cause}", cause)
