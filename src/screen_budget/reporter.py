"""Status reporters: consumers of the controller's outward events.

Reporters must tolerate duplicate TimerStarted/TimerStopped events. The expiry
alert relies on the controller only emitting TimeExpired on the
Active -> Expired edge.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import shutil
import subprocess
from typing import Iterable, Protocol

from .eligibility import format_time
from .signals import EventType, StatusEvent

logger = logging.getLogger("screen_budget.reporter")

ALERT_TITLE = "Screen Time Expired!"
ALERT_BODY = "Your screen time limit has been reached."
ALERT_TIMEOUT_SECONDS = 10


class StatusReporter(Protocol):
    def publish(self, event: StatusEvent) -> None:
        ...


class LoggingReporter:
    """Writes every event to the log; ticks at debug level."""

    def publish(self, event: StatusEvent) -> None:
        if event.type is EventType.TIME_TICK:
            logger.debug(f"Tick: {format_time(event.remaining_seconds)} left")
        elif event.type is EventType.TIME_EXPIRED:
            logger.warning("Time expired")
        else:
            logger.info(f"{event.type.value} ({format_time(event.remaining_seconds)} left)")


def send_alert(command: str, title: str = ALERT_TITLE, body: str = ALERT_BODY) -> dict:
    """Show a user-visible alert by running `command TITLE BODY`."""
    if not command:
        return {"success": False, "error": "No alert command configured"}
    argv = shlex.split(command)
    if shutil.which(argv[0]) is None:
        return {"success": False, "error": f"{argv[0]} not found"}

    try:
        result = subprocess.run(
            [*argv, title, body],
            capture_output=True,
            timeout=ALERT_TIMEOUT_SECONDS,
        )
        if result.returncode == 0:
            return {"success": True, "method": argv[0]}
        return {"success": False, "error": f"{argv[0]} failed: {result.stderr.decode()[:100]}"}
    except subprocess.TimeoutExpired:
        return {"success": False, "error": "Alert command timed out"}
    except OSError as e:
        return {"success": False, "error": str(e)}


class AlertReporter:
    """Fires the one-shot expiry alert on TimeExpired; ignores everything else.

    On a running event loop the alert command runs in the default executor,
    so `publish` returns at once and the controller lock is never held across
    the subprocess. `drain()` waits for alerts still in flight.
    """

    def __init__(self, command: str, sender=send_alert):
        self.command = command
        self._send = sender
        self._pending: set[asyncio.Future] = set()
        self.alerts_sent = 0

    def publish(self, event: StatusEvent) -> None:
        if event.type is not EventType.TIME_EXPIRED:
            return
        self.alerts_sent += 1
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver()
            return
        future = loop.run_in_executor(None, self._deliver)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _deliver(self) -> None:
        try:
            result = self._send(self.command)
        except Exception:
            logger.exception("Expiry alert sender failed")
            return
        if result.get("success"):
            logger.info(f"Expiry alert shown via {result.get('method')}")
        else:
            logger.warning(f"Expiry alert not shown: {result.get('error')}")


class FanoutReporter:
    """Delivers each event to several reporters; one failing does not block the rest."""

    def __init__(self, reporters: Iterable[StatusReporter] = ()):
        self.reporters: list[StatusReporter] = list(reporters)

    def add(self, reporter: StatusReporter) -> None:
        self.reporters.append(reporter)

    def publish(self, event: StatusEvent) -> None:
        for reporter in self.reporters:
            try:
                reporter.publish(event)
            except Exception:
                logger.exception(f"Reporter {type(reporter).__name__} failed on {event.type.value}")
