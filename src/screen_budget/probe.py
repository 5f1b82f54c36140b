"""Synchronous device-state queries used by the startup recovery path.

A probe returns a DeviceSnapshot, or None when the state cannot be read. None
always means "do not resume".
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional, Protocol

from .config import ProbeKind

logger = logging.getLogger("screen_budget.probe")

PROBE_TIMEOUT_SECONDS = 3


@dataclass(frozen=True)
class DeviceSnapshot:
    locked: bool
    screen_on: bool


class DeviceProbe(Protocol):
    def query(self) -> Optional[DeviceSnapshot]:
        ...


class NullProbe:
    """No platform integration; recovery never resumes on its own."""

    def query(self) -> Optional[DeviceSnapshot]:
        return None


class StaticProbe:
    """Fixed reading, for embedding and tests."""

    def __init__(self, snapshot: Optional[DeviceSnapshot]):
        self.snapshot = snapshot

    def query(self) -> Optional[DeviceSnapshot]:
        return self.snapshot


def _parse_properties(output: str) -> dict[str, str]:
    props = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            props[key.strip()] = value.strip()
    return props


class LoginctlProbe:
    """Reads LockedHint/IdleHint of the current systemd-logind session.

    IdleHint stands in for "screen off": logind sets it once the session has
    been idle long enough for the display to blank.
    """

    def __init__(self, session_id: Optional[str] = None, executable: str = "loginctl"):
        self.session_id = session_id or os.environ.get("XDG_SESSION_ID")
        self.executable = executable

    def query(self) -> Optional[DeviceSnapshot]:
        if not self.session_id:
            logger.info("No XDG_SESSION_ID; device state unavailable")
            return None
        if shutil.which(self.executable) is None:
            logger.info(f"{self.executable} not found; device state unavailable")
            return None

        try:
            result = subprocess.run(
                [self.executable, "show-session", self.session_id,
                 "-p", "LockedHint", "-p", "IdleHint"],
                capture_output=True,
                text=True,
                timeout=PROBE_TIMEOUT_SECONDS,
            )
        except subprocess.TimeoutExpired:
            logger.warning("loginctl timed out; device state unavailable")
            return None
        except OSError as e:
            logger.warning(f"loginctl failed: {e}")
            return None

        if result.returncode != 0:
            logger.warning(f"loginctl exited {result.returncode}: {result.stderr.strip()[:100]}")
            return None

        props = _parse_properties(result.stdout)
        locked = props.get("LockedHint")
        idle = props.get("IdleHint")
        if locked not in ("yes", "no"):
            logger.warning(f"Unexpected LockedHint value: {locked!r}")
            return None
        return DeviceSnapshot(locked=locked == "yes", screen_on=idle != "yes")


def build_probe(kind: ProbeKind) -> DeviceProbe:
    if kind is ProbeKind.LOGINCTL:
        return LoginctlProbe()
    return NullProbe()
