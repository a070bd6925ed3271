"""
Time Split: deterministic, order-preserving train/test partition by cutoff date.

    train = rows with date <  cutoff
    test  = rows with date >= cutoff

No shuffling. The split is a pure function of the cutoff, so it is safe to
call separately on the response and on the covariates as long as both use
the identical cutoff.
"""

import logging
from typing import Tuple, TypeVar, Union

import numpy as np
import pandas as pd

from commodity_forecast.errors import EmptyPartitionError, ForecastError
from commodity_forecast.data_science.dataset import ObservedSeries

logger = logging.getLogger(__name__)

Splittable = TypeVar('Splittable', ObservedSeries, pd.DataFrame, pd.Series)


def _dates_of(series: Union[ObservedSeries, pd.DataFrame, pd.Series]) -> pd.DatetimeIndex:
    if isinstance(series, ObservedSeries):
        return series.dates
    if isinstance(series, (pd.DataFrame, pd.Series)):
        if not isinstance(series.index, pd.DatetimeIndex):
            raise ForecastError("split() needs a DatetimeIndex")
        return series.index
    raise TypeError(f"Cannot split object of type {type(series).__name__}")


def split(series: Splittable, cutoff_date) -> Tuple[Splittable, Splittable]:
    """
    Partition a date-indexed series at cutoff_date.

    Args:
        series: ObservedSeries, DataFrame or Series with a DatetimeIndex
        cutoff_date: Anything pandas can parse as a Timestamp

    Returns:
        (train, test), same type as the input

    Raises:
        EmptyPartitionError: if either side would be empty
    """
    cutoff = pd.Timestamp(cutoff_date)
    dates = _dates_of(series)
    is_train = np.asarray(dates < cutoff)

    n_train = int(is_train.sum())
    n_test = len(dates) - n_train
    if n_train == 0 or n_test == 0:
        side = 'training' if n_train == 0 else 'testing'
        raise EmptyPartitionError(f"Cutoff {cutoff.date()} leaves the {side} partition empty",
                                  {'cutoff': str(cutoff), 'n_train': n_train, 'n_test': n_test})

    if isinstance(series, ObservedSeries):
        train, test = series.mask(is_train), series.mask(~is_train)
    else:
        train, test = series.loc[is_train].copy(), series.loc[~is_train].copy()

    logger.debug(f"Split at {cutoff.date()}: train={n_train}, test={n_test}")
    return train, test
