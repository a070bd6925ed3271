"""
Recursive Engine: leak-free step-wise forecasting over a test horizon.

State machine:

    INITIALIZED --(seed history, optional single fit)--> STEPPING --> DONE
                                                             |
                                                             +--> FAILED

At every step i (1..H, ascending date):
    1. read the real covariate row for test date i (known in advance)
    2. refit on the current history   (refit_policy='per_step')
       or reuse the initial fit       (refit_policy='once')
    3. predict_one(history, row)
    4. history <- history + {prediction, real covariate row}
    5. record the ForecastResult

NO DATA LEAKAGE: the engine is never given the test-suffix response. The
only response values it ever sees are the training prefix and its own
prior predictions; lag features are always read from the rolling history.
"""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

import pandas as pd

from commodity_forecast.errors import (
    InsufficientDataError, ShapeMismatchError, LeakageError,
    StepBudgetExceededError, StepFailure
)
from commodity_forecast.data_science.forecasters import ForecastResult, StepwiseForecaster
from commodity_forecast.data_science.history import RollingHistory

logger = logging.getLogger(__name__)

# Hook called before each prediction: (step_index, date, history) -> None
StepObserver = Callable[[int, pd.Timestamp, RollingHistory], None]


class RefitPolicy(str, Enum):
    ONCE = 'once'
    PER_STEP = 'per_step'


VALID_REFIT_POLICIES = [p.value for p in RefitPolicy]


class EngineState(str, Enum):
    INITIALIZED = 'initialized'
    STEPPING = 'stepping'
    DONE = 'done'
    FAILED = 'failed'


class RecursiveEngine:
    """
    Drives a StepwiseForecaster across a test horizon.

    Args:
        forecaster: StepwiseForecaster to run
        refit_policy: 'per_step' (refit before every step) or 'once' (single fit up front).
                      Defaults to the forecaster's own default_refit_policy.
        step_budget: Optional wall-clock limit in seconds for one step's fit + predict.
                     It is checked after the step returns, so exceeding it aborts
                     the run but a step that never returns is not interrupted.
        on_step: Optional observer called before each prediction with
                 (step_index, date, history); used to audit leakage.

    Usage:
        engine = RecursiveEngine(LaggedRegressionForecaster(lags=2), refit_policy='per_step')
        results = engine.run(train_series, train_covariates, test_covariates)
    """

    def __init__(self, forecaster: StepwiseForecaster, refit_policy=None,
                 step_budget: Optional[float] = None, on_step: Optional[StepObserver] = None):
        if not isinstance(forecaster, StepwiseForecaster):
            raise TypeError(f"RecursiveEngine needs a StepwiseForecaster, got {type(forecaster).__name__}")
        if refit_policy is None:
            refit_policy = forecaster.default_refit_policy
        self.forecaster = forecaster
        self.refit_policy = RefitPolicy(refit_policy)
        self.step_budget = step_budget
        self.on_step = on_step
        self.state = EngineState.INITIALIZED

    def run(self, train_series: pd.Series, train_covariates: pd.DataFrame,
            test_covariates: pd.DataFrame) -> List[ForecastResult]:
        """
        Forecast one step per row of test_covariates.

        Args:
            train_series: Training response on the forecaster's scale, date-indexed
            train_covariates: Covariates aligned with train_series
            test_covariates: Real covariates for the horizon dates (no response column)

        Returns:
            Ordered list of ForecastResult, one per horizon date

        Raises:
            InsufficientDataError: training window too short or covariates missing (before any fit)
            ShapeMismatchError: test covariate schema differs from training
            StepFailure: a fit/predict failed or exceeded the step budget; wraps the cause
        """
        self.state = EngineState.INITIALIZED
        name = self.forecaster.name

        self._preflight(train_series, train_covariates, test_covariates)
        history = RollingHistory.seed(train_series, train_covariates)
        horizon = len(test_covariates)

        logger.info(f"  [{name}] recursive run: {horizon} steps, refit_policy={self.refit_policy.value}, "
                    f"seed history={len(history)}")

        fitted = None
        if self.refit_policy == RefitPolicy.ONCE:
            try:
                fitted = self.forecaster.fit(history.series, history.covariates)
            except Exception as e:
                self.state = EngineState.FAILED
                raise StepFailure(0, e) from e

        self.state = EngineState.STEPPING
        results: List[ForecastResult] = []

        for step_index, (date, row) in enumerate(test_covariates.iterrows(), start=1):
            date = pd.Timestamp(date)
            try:
                if history.last_date >= date:
                    raise LeakageError(f"History reaches {history.last_date}, not before step date {date}")
                if self.on_step is not None:
                    self.on_step(step_index, date, history)

                started = time.perf_counter()
                if self.refit_policy == RefitPolicy.PER_STEP:
                    fitted = self.forecaster.fit(history.series, history.covariates)
                result = fitted.predict_one(history, row)
                elapsed = time.perf_counter() - started

                if self.step_budget is not None and elapsed > self.step_budget:
                    raise StepBudgetExceededError(
                        f"Step took {elapsed:.3f}s, budget is {self.step_budget:.3f}s",
                        {'elapsed': elapsed, 'budget': self.step_budget})

                history = history.extended(date, result.point_prediction, row, synthetic=True)
            except Exception as e:
                self.state = EngineState.FAILED
                logger.error(f"  [{name}] step {step_index} ({date.date()}) failed: {e}")
                raise StepFailure(step_index, e, date) from e

            results.append(result)
            logger.debug(f"  [{name}] step {step_index}/{horizon} {date.date()}: {result.point_prediction:+.6f}")

        self.state = EngineState.DONE
        logger.info(f"  [{name}] recursive run complete: {len(results)} steps")
        return results

    def _preflight(self, train_series, train_covariates, test_covariates) -> None:
        """Validate inputs before any fit or prediction is attempted."""
        self.forecaster.check_history_length(len(train_series))

        if list(test_covariates.columns) != list(train_covariates.columns):
            if set(test_covariates.columns) != set(train_covariates.columns):
                raise ShapeMismatchError(
                    f"Test covariates {sorted(test_covariates.columns)} != "
                    f"training covariates {sorted(train_covariates.columns)}")

        for label, frame in (('training', train_covariates), ('test', test_covariates)):
            if frame.isna().to_numpy().any():
                raise InsufficientDataError(f"Missing {label} covariate values")

        if len(test_covariates) == 0:
            raise InsufficientDataError("Empty forecast horizon")
        if not test_covariates.index.is_monotonic_increasing or test_covariates.index.has_duplicates:
            raise LeakageError("Horizon dates must be strictly increasing")
