"""Suspend inhibition while audio is playing."""

from __future__ import annotations

import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import Any, Optional

from loguru import logger

from wavetuner.constants import APP_NAME


class Inhibitor(ABC):
    """Host capability that keeps the device from suspending."""

    @abstractmethod
    def acquire(self) -> Any:
        """Start inhibiting suspension. Returns a token for ``release``."""
        ...

    @abstractmethod
    def release(self, token: Any) -> None:
        """Stop inhibiting suspension for a token returned by ``acquire``."""
        ...


class NullInhibitor(Inhibitor):
    """Inhibitor for platforms (and tests) with nothing to inhibit."""

    def acquire(self) -> Any:
        return object()

    def release(self, token: Any) -> None:
        pass


class _ProcessInhibitor(Inhibitor):
    """Holds a helper process whose lifetime is the inhibition."""

    def _command(self) -> list[str]:
        raise NotImplementedError

    def acquire(self) -> subprocess.Popen:
        return subprocess.Popen(
            self._command(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

    def release(self, token: subprocess.Popen) -> None:
        if token.poll() is not None:
            return
        token.terminate()
        try:
            token.wait(timeout=2)
        except subprocess.TimeoutExpired:
            token.kill()
            token.wait()


class SystemdInhibitor(_ProcessInhibitor):
    """Linux: hold a systemd-logind idle/sleep block lock."""

    def _command(self) -> list[str]:
        return [
            "systemd-inhibit",
            "--what=idle:sleep",
            f"--who={APP_NAME}",
            "--why=Playing internet radio",
            "--mode=block",
            "sleep", "infinity",
        ]


class CaffeinateInhibitor(_ProcessInhibitor):
    """macOS: prevent idle sleep while caffeinate runs."""

    def _command(self) -> list[str]:
        return ["caffeinate", "-i"]


def default_inhibitor() -> Inhibitor:
    """Pick the suspend inhibitor available on this platform."""
    if sys.platform == "linux" and shutil.which("systemd-inhibit"):
        return SystemdInhibitor()
    if sys.platform == "darwin" and shutil.which("caffeinate"):
        return CaffeinateInhibitor()
    return NullInhibitor()


class KeepAliveManager:
    """Single activation flag around an ``Inhibitor``.

    ``activate()`` and ``deactivate()`` are idempotent. Neither raises:
    playback must never fail because suspend inhibition is unavailable, and
    a failed release still leaves the manager inactive.
    """

    def __init__(self, inhibitor: Optional[Inhibitor] = None):
        self._inhibitor = inhibitor if inhibitor is not None else NullInhibitor()
        self._token: Any = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def activate(self) -> None:
        if self._active:
            return
        try:
            self._token = self._inhibitor.acquire()
        except Exception as e:
            logger.warning(f"Could not inhibit suspend: {e}")
            return
        self._active = True
        logger.debug("Keep-alive activated")

    def deactivate(self) -> None:
        if not self._active:
            return
        token, self._token = self._token, None
        self._active = False
        try:
            self._inhibitor.release(token)
        except Exception as e:
            logger.warning(f"Keep-alive release failed: {e}")
        else:
            logger.debug("Keep-alive released")
