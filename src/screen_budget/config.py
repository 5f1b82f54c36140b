"""Configuration management for screen-budget.

Values come from the environment; a `.env` file in the working directory is
loaded first so a checkout can carry local overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_DB_PATH = Path.home() / ".screen-budget" / "state.db"
DEFAULT_PORT = 7788  # Authoritative port for the budget API
DEFAULT_PERSIST_EVERY_TICKS = 10
DEFAULT_LOG_CAPACITY = 10
DEFAULT_ALERT_COMMAND = "notify-send"


class ForegroundPolicy(str, Enum):
    PAUSE = "pause"      # foreground time is simply not counted
    CREDIT = "credit"    # foreground time is also added back on leaving


class ProbeKind(str, Enum):
    LOGINCTL = "loginctl"
    NONE = "none"


@dataclass
class Settings:
    """Runtime settings for the controller, API and CLI."""

    db_path: Path = DEFAULT_DB_PATH
    port: int = DEFAULT_PORT
    api_url: str = f"http://localhost:{DEFAULT_PORT}"
    persist_every_ticks: int = DEFAULT_PERSIST_EVERY_TICKS
    log_capacity: int = DEFAULT_LOG_CAPACITY
    foreground_policy: ForegroundPolicy = ForegroundPolicy.PAUSE
    probe: ProbeKind = ProbeKind.LOGINCTL
    alert_command: str = DEFAULT_ALERT_COMMAND

    def validate(self) -> None:
        if self.persist_every_ticks < 1:
            raise ConfigError(
                f"SCREEN_BUDGET_PERSIST_EVERY must be >= 1, got {self.persist_every_ticks}"
            )
        if self.log_capacity < 1:
            raise ConfigError(
                f"SCREEN_BUDGET_LOG_CAPACITY must be >= 1, got {self.log_capacity}"
            )
        if not 0 < self.port < 65536:
            raise ConfigError(f"SCREEN_BUDGET_PORT out of range: {self.port}")


def _int_env(env: dict, name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _enum_env(env: dict, name: str, enum_cls, default):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise ConfigError(f"Invalid {name} '{raw}'. Valid options: {valid}") from None


def load_settings(env: dict | None = None, dotenv: bool = True) -> Settings:
    """Build Settings from the environment (or an explicit mapping)."""
    if env is None:
        if dotenv:
            load_dotenv(Path.cwd() / ".env")
        env = dict(os.environ)

    port = _int_env(env, "SCREEN_BUDGET_PORT", DEFAULT_PORT)
    db_raw = env.get("SCREEN_BUDGET_DB")
    settings = Settings(
        db_path=Path(db_raw).expanduser() if db_raw else DEFAULT_DB_PATH,
        port=port,
        api_url=env.get("SCREEN_BUDGET_URL") or f"http://localhost:{port}",
        persist_every_ticks=_int_env(env, "SCREEN_BUDGET_PERSIST_EVERY", DEFAULT_PERSIST_EVERY_TICKS),
        log_capacity=_int_env(env, "SCREEN_BUDGET_LOG_CAPACITY", DEFAULT_LOG_CAPACITY),
        foreground_policy=_enum_env(
            env, "SCREEN_BUDGET_FOREGROUND_POLICY", ForegroundPolicy, ForegroundPolicy.PAUSE
        ),
        probe=_enum_env(env, "SCREEN_BUDGET_PROBE", ProbeKind, ProbeKind.LOGINCTL),
        alert_command=env.get("SCREEN_BUDGET_ALERT_COMMAND", DEFAULT_ALERT_COMMAND),
    )
    settings.validate()
    return settings
