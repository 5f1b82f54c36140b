"""
Screen-Budget API: local FastAPI server hosting the budget controller.

This server provides:
- Signal intake (device lock, screen power, app foreground) from OS observers
- Budget updates
- Live status and the rolling event log for displays
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from .config import Settings, load_settings
from .controller import BudgetController
from .errors import InvalidBudget
from .event_log import EventLog
from .probe import DeviceProbe, build_probe
from .reporter import AlertReporter, FanoutReporter, LoggingReporter, StatusReporter
from .signals import AppForegroundChanged, LockChanged, ScreenChanged
from .store import StateStore

logger = logging.getLogger("screen_budget.api")


# Pydantic Models
class BudgetRequest(BaseModel):
    seconds: Optional[int] = Field(default=None, description="Absolute budget in seconds")
    minutes: Optional[int] = Field(default=None, description="Absolute budget in minutes")


class LockRequest(BaseModel):
    locked: bool


class ScreenRequest(BaseModel):
    on: bool


class ForegroundRequest(BaseModel):
    foreground: bool


class LogEntry(BaseModel):
    timestamp: str
    message: str


class LogsResponse(BaseModel):
    logs: List[LogEntry]
    count: int


def _asyncio_exception_handler(loop, context):
    """Route uncaught task exceptions into the server log."""
    exception = context.get("exception")
    if exception:
        logger.error(
            f"Unhandled asyncio exception: {context.get('message', '')}",
            exc_info=(type(exception), exception, exception.__traceback__),
        )
    else:
        logger.error(f"Asyncio error: {context}")


def build_controller(
    settings: Settings,
    scheduler,
    probe: Optional[DeviceProbe] = None,
    reporter: Optional[StatusReporter] = None,
) -> BudgetController:
    if reporter is None:
        reporter = FanoutReporter([LoggingReporter(), AlertReporter(settings.alert_command)])
    return BudgetController(
        store=StateStore(settings.db_path),
        scheduler=scheduler,
        reporter=reporter,
        probe=probe if probe is not None else build_probe(settings.probe),
        event_log=EventLog(settings.log_capacity),
        persist_every_ticks=settings.persist_every_ticks,
        foreground_policy=settings.foreground_policy,
    )


def create_app(
    settings: Optional[Settings] = None,
    scheduler=None,
    probe: Optional[DeviceProbe] = None,
    reporter: Optional[StatusReporter] = None,
) -> FastAPI:
    settings = settings or load_settings()
    scheduler = scheduler if scheduler is not None else AsyncIOScheduler()
    controller = build_controller(settings, scheduler, probe=probe, reporter=reporter)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(_asyncio_exception_handler)

        # Startup
        scheduler.start()
        logger.info("Scheduler started")
        await controller.startup()
        yield

        # Shutdown
        await controller.shutdown()
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    app = FastAPI(
        title="Screen-Budget",
        description="Local screen-time budget controller",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.controller = controller
    app.state.settings = settings

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now().isoformat()}

    @app.get("/api/budget")
    async def get_budget(request: Request):
        """Current budget, device flags and status text."""
        return request.app.state.controller.snapshot()

    @app.post("/api/budget")
    async def set_budget(body: BudgetRequest, request: Request):
        """Set the remaining budget. Exactly one of seconds/minutes."""
        if (body.seconds is None) == (body.minutes is None):
            raise HTTPException(status_code=400, detail="Provide exactly one of 'seconds' or 'minutes'")
        seconds = body.seconds if body.seconds is not None else body.minutes * 60

        ctl: BudgetController = request.app.state.controller
        try:
            await ctl.set_budget(seconds)
        except InvalidBudget as e:
            raise HTTPException(status_code=400, detail=str(e))
        return ctl.snapshot()

    @app.post("/api/signals/lock")
    async def signal_lock(body: LockRequest, request: Request):
        ctl: BudgetController = request.app.state.controller
        await ctl.handle_signal(LockChanged(locked=body.locked))
        return ctl.snapshot()

    @app.post("/api/signals/screen")
    async def signal_screen(body: ScreenRequest, request: Request):
        ctl: BudgetController = request.app.state.controller
        await ctl.handle_signal(ScreenChanged(on=body.on))
        return ctl.snapshot()

    @app.post("/api/signals/foreground")
    async def signal_foreground(body: ForegroundRequest, request: Request):
        ctl: BudgetController = request.app.state.controller
        await ctl.handle_signal(AppForegroundChanged(foreground=body.foreground))
        return ctl.snapshot()

    @app.get("/api/log", response_model=LogsResponse)
    async def get_recent_log(request: Request, limit: int = 50):
        """
        Get recent entries from the rolling event log.

        Args:
            limit: Maximum number of entries to return (capped at log capacity)
        """
        event_log: EventLog = request.app.state.controller.event_log
        limit = min(limit, event_log.capacity)
        logs = event_log.recent(limit)
        return {"logs": logs, "count": len(logs)}

    return app
