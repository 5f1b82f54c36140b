"""Exception types raised across the controller boundary."""


class InvalidBudget(ValueError):
    """A BudgetSet command carried a negative number of seconds."""

    def __init__(self, seconds: int):
        self.seconds = seconds
        super().__init__(f"Budget must be >= 0 seconds, got {seconds}")


class StoreUnavailable(RuntimeError):
    """The durable state store could not be read or written."""


class ConfigError(ValueError):
    """A configuration value could not be parsed."""
