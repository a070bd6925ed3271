"""
Forecaster contract.

Two capability variants share one result type (ForecastResult) but differ in
how they are invoked:

- FixedHorizonForecaster: fit once, predict the whole horizon in one call.
      fitted = forecaster.fit(train_series, train_covariates)
      results = fitted.predict(horizon_length, future_covariates)

- StepwiseForecaster: predict exactly one step from the current history.
      fitted = forecaster.fit(history.series, history.covariates)
      result = fitted.predict_one(history, next_covariate_row)
  The RecursiveEngine decides whether to refit before every step or to reuse
  one fit; a reused fit still reads its lag context from the history it is
  given.

New model families plug in by subclassing one of the variants and
implementing _fit(); the engine never branches on model family.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd

from commodity_forecast.errors import (
    ForecastError, InsufficientDataError, ShapeMismatchError, ModelFitError
)
from commodity_forecast.data_science.history import RollingHistory
from commodity_forecast.data_science.series_transform import VALID_TARGET_SCALES

logger = logging.getLogger(__name__)

# Library exceptions that mean "this fit failed" rather than a programming error
_LIBRARY_FIT_ERRORS = (ValueError, np.linalg.LinAlgError, RuntimeError, ArithmeticError)


@dataclass(frozen=True)
class ForecastResult:
    """One predicted step on the forecaster's target scale."""
    date: pd.Timestamp
    point_prediction: float
    lower: Optional[float] = None
    upper: Optional[float] = None
    scale: str = 'diff_log'


class FittedModel(ABC):
    """Base for fitted models: remembers the covariate schema seen at fit time."""

    def __init__(self, covariate_names: List[str], scale: str):
        self.covariate_names = list(covariate_names)
        self.scale = scale

    def _check_fields(self, fields) -> None:
        if set(fields) != set(self.covariate_names):
            raise ShapeMismatchError(
                f"Covariate fields {sorted(fields)} do not match fit-time fields {sorted(self.covariate_names)}",
                {'expected': sorted(self.covariate_names), 'got': sorted(fields)})


class FixedHorizonModel(FittedModel):
    """Fitted model that forecasts a whole horizon at once."""

    def predict(self, horizon_length: int, future_covariates: pd.DataFrame) -> List[ForecastResult]:
        """
        Forecast horizon_length steps.

        Args:
            horizon_length: Number of steps
            future_covariates: Known-in-advance covariates for the horizon dates,
                               one row per step, indexed by date

        Raises:
            ShapeMismatchError: on a covariate schema change or a row count != horizon_length
        """
        self._check_fields(future_covariates.columns)
        if len(future_covariates) != horizon_length:
            raise ShapeMismatchError(f"Expected {horizon_length} covariate rows, got {len(future_covariates)}")
        X_future = future_covariates[self.covariate_names]
        try:
            point, lower, upper = self._predict(horizon_length, X_future)
        except _LIBRARY_FIT_ERRORS as e:
            raise ModelFitError(f"Forecast failed: {e}") from e

        results = []
        for i, date in enumerate(future_covariates.index):
            results.append(ForecastResult(
                date=pd.Timestamp(date),
                point_prediction=float(point[i]),
                lower=None if lower is None else float(lower[i]),
                upper=None if upper is None else float(upper[i]),
                scale=self.scale,
            ))
        return results

    @abstractmethod
    def _predict(self, horizon_length: int, future_covariates: pd.DataFrame):
        """Return (point, lower_or_None, upper_or_None) arrays of length horizon_length."""


class StepwiseModel(FittedModel):
    """Fitted model that forecasts exactly one step past a history."""

    def predict_one(self, history: RollingHistory, next_covariate_row: pd.Series) -> ForecastResult:
        """
        Forecast the step immediately after history.

        Args:
            history: Current rolling history (real + prior predicted values)
            next_covariate_row: Real covariates for the step being predicted;
                                its name is the step's date

        Raises:
            ShapeMismatchError: on a covariate schema change
        """
        self._check_fields(next_covariate_row.index)
        self._check_fields(history.covariate_names)
        x_next = next_covariate_row[self.covariate_names].to_numpy(dtype=float)
        point, lower, upper = self._predict_one(history, x_next)
        return ForecastResult(
            date=pd.Timestamp(next_covariate_row.name),
            point_prediction=float(point),
            lower=None if lower is None else float(lower),
            upper=None if upper is None else float(upper),
            scale=self.scale,
        )

    @abstractmethod
    def _predict_one(self, history: RollingHistory, x_next: np.ndarray):
        """Return (point, lower_or_None, upper_or_None) for the next step."""


class Forecaster(ABC):
    """
    Unfitted model family adapter.

    Subclasses set:
        variant: 'fixed' or 'stepwise'
        target_scale: 'diff_log' or 'log'
        min_history (property): minimum number of training points
    """

    variant: str = ''
    target_scale: str = 'diff_log'

    def __init__(self, name: Optional[str] = None):
        self.name = name or type(self).__name__
        if self.target_scale not in VALID_TARGET_SCALES:
            raise ValueError(f"Invalid target_scale '{self.target_scale}'. Must be one of: {VALID_TARGET_SCALES}")

    @property
    def min_history(self) -> int:
        return 1

    def check_history_length(self, n_obs: int) -> None:
        """Raise InsufficientDataError when n_obs is below this model's minimum."""
        if n_obs < self.min_history:
            raise InsufficientDataError(
                f"{self.name} needs at least {self.min_history} observations, got {n_obs}",
                {'required': self.min_history, 'available': n_obs})

    def fit(self, series: pd.Series, covariates: pd.DataFrame) -> FittedModel:
        """
        Fit on a training window.

        Args:
            series: Response on self.target_scale, date-indexed
            covariates: Covariate rows aligned with series

        Raises:
            InsufficientDataError: window too short or covariates missing
            ShapeMismatchError: series and covariates not aligned
            ModelFitError: the underlying library failed
        """
        self.check_history_length(len(series))
        if len(covariates) != len(series) or not covariates.index.equals(series.index):
            raise ShapeMismatchError("Training series and covariates are not aligned on dates")
        if covariates.isna().to_numpy().any():
            raise InsufficientDataError("Training covariates contain missing values")
        if series.isna().any():
            raise InsufficientDataError("Training series contains missing values")

        try:
            return self._fit(series.astype(float), covariates.astype(float))
        except ForecastError:
            raise
        except _LIBRARY_FIT_ERRORS as e:
            raise ModelFitError(f"{self.name} fit failed: {e}", {'model': self.name}) from e

    @abstractmethod
    def _fit(self, series: pd.Series, covariates: pd.DataFrame) -> FittedModel:
        """Family-specific fitting."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class FixedHorizonForecaster(Forecaster):
    """Fit once; the fitted model predicts the full horizon in one call."""
    variant = 'fixed'


class StepwiseForecaster(Forecaster):
    """One-step-ahead model driven by the RecursiveEngine."""
    variant = 'stepwise'
    default_refit_policy = 'per_step'
