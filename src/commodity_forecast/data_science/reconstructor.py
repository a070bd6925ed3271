"""
Reconstructor: difference/log-scale forecasts -> price-scale forecasts.

Every strategy goes through the same path, so all are compared on the
same price scale:

    ForecastResults --to_diff_scale--> diffs
    diffs --reconstruct(anchor)--> log prices --to_price--> prices

The anchor is ALWAYS the last true log price observed strictly before the
horizon starts, never a predicted value.
"""

import logging
from typing import List, Sequence

import numpy as np
import pandas as pd

from commodity_forecast.errors import DomainError, LengthMismatchError
from commodity_forecast.data_science.forecasters import ForecastResult
from commodity_forecast.data_science.series_transform import (
    reconstruct, to_price, level_to_diffs
)

logger = logging.getLogger(__name__)


def reconstruct_to_price(anchor_log_price: float, predicted_diffs: Sequence[float]) -> np.ndarray:
    """
    Cumulative-sum-then-exponentiate reconstruction of a price path.

    Math:
        price[i] = exp(anchor + sum_{k<=i} diff[k])

    Args:
        anchor_log_price: Last true log price before the horizon
        predicted_diffs: Difference-scale predictions in date order

    Returns:
        Predicted prices, same length as predicted_diffs
    """
    return to_price(reconstruct(anchor_log_price, predicted_diffs))


def to_diff_scale(anchor_log_price: float, results: List[ForecastResult]) -> np.ndarray:
    """
    Point predictions as differences, whatever scale the forecaster used.

    Log-level predictions are converted relative to the anchor so that they
    reconstruct to exactly themselves.
    """
    if not results:
        return np.array([])
    scales = {r.scale for r in results}
    if len(scales) != 1:
        raise ValueError(f"Mixed forecast scales in one horizon: {sorted(scales)}")
    points = np.array([r.point_prediction for r in results], dtype=float)
    if scales.pop() == 'log':
        return level_to_diffs(anchor_log_price, points)
    return points


def _bound_prices(anchor_log_price: float, results: List[ForecastResult],
                  diffs: np.ndarray, attr: str) -> np.ndarray:
    """
    Price bounds per step: point path up to step i-1, bound at step i.

    For log-scale results the bound is already a log level.
    """
    bounds = np.array([np.nan if getattr(r, attr) is None else getattr(r, attr) for r in results],
                      dtype=float)
    if results[0].scale == 'log':
        return to_price(bounds)
    prior = np.concatenate([[0.0], np.cumsum(diffs)[:-1]])
    return to_price(anchor_log_price + prior + bounds)


def build_reconstructed_series(anchor_log_price: float, results: List[ForecastResult],
                               actual_prices: pd.Series) -> pd.DataFrame:
    """
    Assemble the ReconstructedSeries for one strategy.

    Args:
        anchor_log_price: Last true training log price
        results: ForecastResults in horizon order
        actual_prices: True test-suffix prices, date-indexed

    Returns:
        DataFrame indexed by date with predicted_price, actual_price and,
        when the forecaster supplied bounds, lower_price / upper_price.

    Raises:
        LengthMismatchError: length or date alignment differs from actual_prices
        DomainError: a reconstructed price overflows or is NaN
    """
    if len(results) != len(actual_prices):
        raise LengthMismatchError(f"{len(results)} predictions for {len(actual_prices)} actual prices",
                                  {'predicted': len(results), 'actual': len(actual_prices)})

    dates = pd.DatetimeIndex([r.date for r in results])
    if not dates.equals(pd.DatetimeIndex(actual_prices.index)):
        raise LengthMismatchError("Prediction dates do not match the testing suffix dates")

    diffs = to_diff_scale(anchor_log_price, results)
    with np.errstate(over='ignore'):
        predicted = reconstruct_to_price(anchor_log_price, diffs)
    bad = ~np.isfinite(predicted)
    if bad.any():
        first = dates[int(np.argmax(bad))]
        raise DomainError(f"Predicted price is not finite from {first.date()} on ({int(bad.sum())} step(s))",
                          {'n_invalid': int(bad.sum()), 'first_date': str(first)})

    frame = pd.DataFrame({
        'predicted_price': predicted,
        'actual_price': actual_prices.to_numpy(dtype=float),
    }, index=dates)
    frame.index.name = 'date'

    if any(r.lower is not None for r in results):
        frame['lower_price'] = _bound_prices(anchor_log_price, results, diffs, 'lower')
    if any(r.upper is not None for r in results):
        frame['upper_price'] = _bound_prices(anchor_log_price, results, diffs, 'upper')

    return frame
