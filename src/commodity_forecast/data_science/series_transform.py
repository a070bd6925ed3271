"""
Series Transform: invertible mapping between raw prices and the
stationarity-friendly representations the forecasters are trained on.

    price --to_log--> log_price --to_diff_log--> diff_log_price
    diff_log_price --reconstruct(anchor)--> log_price --to_price--> price

Reconstruction is ONE cumulative sum anchored at a single known log price.
It is never expressed as a chain of independent single-step inversions, so
the anchor cannot drift between steps.

Usage:
    from commodity_forecast.data_science.series_transform import (
        to_log, to_diff_log, reconstruct, to_price, level_to_diffs,
        VALID_TARGET_SCALES
    )
"""

import logging
from typing import Union

import numpy as np
import pandas as pd

from commodity_forecast.errors import DomainError

logger = logging.getLogger(__name__)

# Scales a forecaster may predict on
VALID_TARGET_SCALES = ['diff_log', 'log']

ArrayLike = Union[float, np.ndarray, pd.Series, list]


def to_log(price: ArrayLike) -> ArrayLike:
    """
    Natural log of a price (scalar, array or Series).

    Raises:
        DomainError: if any price is <= 0 or not finite
    """
    if isinstance(price, pd.Series):
        values = price.to_numpy(dtype=float)
    else:
        values = np.asarray(price, dtype=float)

    bad = ~np.isfinite(values) | (values <= 0)
    if np.any(bad):
        n_bad = int(np.sum(bad))
        raise DomainError(f"Cannot take log of non-positive or non-finite price ({n_bad} value(s))",
                          {'n_invalid': n_bad})

    logged = np.log(values)
    if isinstance(price, pd.Series):
        return pd.Series(logged, index=price.index, name=price.name)
    if np.ndim(price) == 0:
        return float(logged)
    return logged


def to_diff_log(log_series: ArrayLike) -> ArrayLike:
    """
    First difference of a log-price series.

    The first element is undefined and dropped: element i of the result is
    log[i + 1] - log[i], so the output is one shorter than the input.
    A Series keeps the index of the later observation of each pair.
    """
    if isinstance(log_series, pd.Series):
        return log_series.diff().iloc[1:]
    values = np.asarray(log_series, dtype=float)
    return np.diff(values)


def reconstruct(anchor_log_price: float, diffs: ArrayLike) -> np.ndarray:
    """
    Rebuild a log-price path from an anchor and a sequence of differences.

    Math:
        result[i] = anchor + sum_{k<=i} diffs[k]

    Args:
        anchor_log_price: Last known true log price before the first diff
        diffs: Ordered difference-scale values

    Returns:
        Array of log prices, same length as diffs
    """
    values = np.asarray(diffs, dtype=float).ravel()
    return float(anchor_log_price) + np.cumsum(values)


def to_price(log_series: ArrayLike) -> ArrayLike:
    """Elementwise exponentiation back to the price scale."""
    if isinstance(log_series, pd.Series):
        return np.exp(log_series)
    values = np.asarray(log_series, dtype=float)
    if values.ndim == 0:
        return float(np.exp(values))
    return np.exp(values)


def level_to_diffs(anchor_log_price: float, log_levels: ArrayLike) -> np.ndarray:
    """
    Express log-level predictions as differences relative to the anchor.

    This lets log-scale forecasters share the single anchored reconstruction
    path: reconstruct(anchor, level_to_diffs(anchor, L)) == L.
    """
    levels = np.asarray(log_levels, dtype=float).ravel()
    if levels.size == 0:
        return levels
    return np.diff(np.concatenate([[float(anchor_log_price)], levels]))
