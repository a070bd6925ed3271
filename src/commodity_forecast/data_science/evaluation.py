"""
Evaluation Harness: one accuracy contract for every strategy.

    RMSE = sqrt(mean((pred - actual)^2))
    MAE  = mean(|pred - actual|)
    MAPE = mean(|pred - actual| / |actual|) * 100

rank() picks the minimum-RMSE record; ties go to the first one seen.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error, mean_absolute_error

from commodity_forecast.errors import DomainError, LengthMismatchError

logger = logging.getLogger(__name__)

SeriesLike = Union[pd.Series, np.ndarray, Sequence[float]]


@dataclass(frozen=True)
class AccuracyRecord:
    """Price-scale accuracy of one strategy."""
    model_name: str
    rmse: float
    mae: float
    mape: float

    def to_dict(self) -> Dict:
        return asdict(self)


def score(predicted_price_series: SeriesLike, actual_price_series: SeriesLike,
          model_name: str = 'model') -> AccuracyRecord:
    """
    Score predicted prices against actual prices.

    When both inputs are date-indexed Series their indices must match exactly.

    Raises:
        LengthMismatchError: on different lengths or misaligned dates
        DomainError: on a NaN or infinite price
    """
    if isinstance(predicted_price_series, pd.Series) and isinstance(actual_price_series, pd.Series):
        if not predicted_price_series.index.equals(actual_price_series.index):
            raise LengthMismatchError(f"[{model_name}] predicted and actual dates are not aligned")

    y_pred = np.asarray(predicted_price_series, dtype=float).ravel()
    y_true = np.asarray(actual_price_series, dtype=float).ravel()

    if len(y_pred) != len(y_true):
        raise LengthMismatchError(f"[{model_name}] {len(y_pred)} predictions vs {len(y_true)} actuals",
                                  {'predicted': len(y_pred), 'actual': len(y_true)})
    if len(y_true) == 0:
        raise LengthMismatchError(f"[{model_name}] nothing to score")
    if not (np.isfinite(y_pred).all() and np.isfinite(y_true).all()):
        raise DomainError(f"[{model_name}] cannot score non-finite prices")

    rmse = float(np.sqrt(mean_squared_error(y_true, y_pred)))
    mae = float(mean_absolute_error(y_true, y_pred))
    mape = float(np.mean(np.abs((y_true - y_pred) / np.abs(y_true))) * 100)

    record = AccuracyRecord(model_name=model_name, rmse=rmse, mae=mae, mape=mape)
    logger.debug(f"[{model_name}] RMSE={rmse:.4f} MAE={mae:.4f} MAPE={mape:.2f}%")
    return record


def rank(records: Sequence[AccuracyRecord]) -> str:
    """
    Name of the record with minimum RMSE (first encountered wins ties).

    Records with a non-finite RMSE are never selected.

    Raises:
        ValueError: on an empty sequence or when no record has a finite RMSE
    """
    if not records:
        raise ValueError("No accuracy records to rank")
    best: Optional[AccuracyRecord] = None
    for record in records:
        if not np.isfinite(record.rmse):
            continue
        if best is None or record.rmse < best.rmse:
            best = record
    if best is None:
        raise ValueError("No accuracy record has a finite RMSE")
    return best.model_name


def leaderboard(records: Sequence[AccuracyRecord]) -> pd.DataFrame:
    """Records as a DataFrame sorted by RMSE (stable), 1-based rank index."""
    columns = ['model_name', 'rmse', 'mae', 'mape']
    if not records:
        return pd.DataFrame(columns=columns)
    frame = pd.DataFrame([r.to_dict() for r in records], columns=columns)
    frame = frame.sort_values('rmse', kind='mergesort').reset_index(drop=True)
    frame.index = frame.index + 1
    frame.index.name = 'rank'
    return frame
