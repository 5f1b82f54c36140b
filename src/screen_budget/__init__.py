"""Screen-time budget controller."""

from .controller import BudgetController, BudgetState
from .countdown import CountdownEngine, EngineState, TickResult
from .eligibility import evaluate
from .errors import ConfigError, InvalidBudget, StoreUnavailable
from .signals import AppForegroundChanged, BudgetSet, LockChanged, ScreenChanged

__version__ = "0.1.0"

__all__ = [
    "AppForegroundChanged",
    "BudgetController",
    "BudgetSet",
    "BudgetState",
    "ConfigError",
    "CountdownEngine",
    "EngineState",
    "InvalidBudget",
    "LockChanged",
    "ScreenChanged",
    "StoreUnavailable",
    "TickResult",
    "evaluate",
]
