from pathlib import Path

import pytest

from screen_budget import countdown
from screen_budget.config import (
    DEFAULT_DB_PATH,
    DEFAULT_PERSIST_EVERY_TICKS,
    DEFAULT_PORT,
    ForegroundPolicy,
    ProbeKind,
    load_settings,
)
from screen_budget.errors import ConfigError


def test_defaults():
    settings = load_settings(env={})
    assert settings.db_path == DEFAULT_DB_PATH
    assert settings.port == DEFAULT_PORT
    assert settings.api_url == f"http://localhost:{DEFAULT_PORT}"
    assert settings.persist_every_ticks == 10
    assert settings.log_capacity == 10
    assert settings.foreground_policy is ForegroundPolicy.PAUSE
    assert settings.probe is ProbeKind.LOGINCTL


def test_overrides(tmp_path):
    settings = load_settings(env={
        "SCREEN_BUDGET_DB": str(tmp_path / "x.db"),
        "SCREEN_BUDGET_PORT": "9000",
        "SCREEN_BUDGET_PERSIST_EVERY": "5",
        "SCREEN_BUDGET_LOG_CAPACITY": "3",
        "SCREEN_BUDGET_FOREGROUND_POLICY": "CREDIT",
        "SCREEN_BUDGET_PROBE": "none",
        "SCREEN_BUDGET_ALERT_COMMAND": "osascript-alert",
    })
    assert settings.db_path == Path(tmp_path / "x.db")
    assert settings.port == 9000
    assert settings.api_url == "http://localhost:9000"
    assert settings.persist_every_ticks == 5
    assert settings.log_capacity == 3
    assert settings.foreground_policy is ForegroundPolicy.CREDIT
    assert settings.probe is ProbeKind.NONE
    assert settings.alert_command == "osascript-alert"


def test_explicit_url_wins():
    settings = load_settings(env={"SCREEN_BUDGET_URL": "http://phone:7788"})
    assert settings.api_url == "http://phone:7788"


@pytest.mark.parametrize("env", [
    {"SCREEN_BUDGET_PORT": "abc"},
    {"SCREEN_BUDGET_PORT": "70000"},
    {"SCREEN_BUDGET_PERSIST_EVERY": "0"},
    {"SCREEN_BUDGET_LOG_CAPACITY": "-1"},
    {"SCREEN_BUDGET_FOREGROUND_POLICY": "refund"},
    {"SCREEN_BUDGET_PROBE": "x11"},
])
def test_invalid_values(env):
    with pytest.raises(ConfigError):
        load_settings(env=env)


def test_dotenv_file_loaded(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SCREEN_BUDGET_LOG_CAPACITY", raising=False)
    (tmp_path / ".env").write_text("SCREEN_BUDGET_LOG_CAPACITY=7\n", encoding="utf-8")
    settings = load_settings()
    assert settings.log_capacity == 7
    monkeypatch.delenv("SCREEN_BUDGET_LOG_CAPACITY", raising=False)


def test_engine_uses_settings_persist_default():
    assert countdown.DEFAULT_PERSIST_EVERY_TICKS is DEFAULT_PERSIST_EVERY_TICKS
    assert load_settings(env={}).persist_every_ticks == DEFAULT_PERSIST_EVERY_TICKS
