"""Eligibility rules for the countdown. Pure logic, no I/O."""

from __future__ import annotations


def evaluate(locked: bool, app_foreground: bool, remaining_seconds: int) -> bool:
    """True when the countdown may advance right now.

    Screen power is deliberately not an input: it only affects status text.
    """
    return not locked and not app_foreground and remaining_seconds > 0


def pause_reason(locked: bool, app_foreground: bool, remaining_seconds: int) -> str | None:
    """First reason the countdown is held, or None when eligible."""
    if locked:
        return "locked"
    if app_foreground:
        return "app_foreground"
    if remaining_seconds <= 0:
        return "no_budget"
    return None


def format_time(seconds: int) -> str:
    """Format seconds as 'H:MM:SS', or 'M:SS' under an hour."""
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
