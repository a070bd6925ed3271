"""
Forecasting Errors

Exception taxonomy shared by the transform, split, model, engine and
evaluation layers. Every error carries a human-readable message plus an
optional ``details`` dict that callers can log or inspect.
"""

from typing import Any, Dict, Optional


class ForecastError(Exception):
    """Base class for all forecasting errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainError(ForecastError):
    """Raised when a transform receives a value outside its domain (e.g. price <= 0)."""


class EmptyPartitionError(ForecastError):
    """Raised when a cutoff leaves the training or the testing side empty."""


class InsufficientDataError(ForecastError):
    """Raised when a window is too short for a model or a required covariate is missing."""


class ShapeMismatchError(ForecastError):
    """Raised when the covariate schema at predict time differs from fit time."""


class LengthMismatchError(ForecastError):
    """Raised when predicted and actual series differ in length or date alignment."""


class LeakageError(ForecastError):
    """Raised when a history would receive a date that is not strictly in its future."""


class ModelFitError(ForecastError):
    """Raised when the underlying model library fails to fit."""


class StepBudgetExceededError(ForecastError):
    """Raised when one recursive step takes longer than the caller's budget."""


class ConfigError(ForecastError):
    """Raised when a configuration fails validation."""


class StepFailure(ForecastError):
    """Wraps the error that aborted a recursive run, tagged with the failing step.

    Step 0 is the single up-front fit of a ``once`` refit policy; steps
    1..H are the horizon steps.
    """

    def __init__(self, step_index: int, cause: BaseException, date: Any = None):
        self.step_index = step_index
        self.cause = cause
        self.date = date
        where = f"step {step_index}" if date is None else f"step {step_index} ({date})"
        message = f"Recursive forecast aborted at {where}: {type(cause).__name__}: {cause}"
        super().__init__(message, {'step_index': step_index, 'date': date,
                                   'cause': type(cause).__name__})
