"""
Observed dataset: the validated, immutable view of the already-joined
price + covariate table that every downstream component consumes.

Cleaning, imputation and multi-source joins happen upstream. This module
only checks the invariants the forecasting core relies on:
- dates strictly increasing and contiguous at the series frequency
- prices strictly positive (log domain)
- every covariate present for every date
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Mapping, Optional

import numpy as np
import pandas as pd

from commodity_forecast.errors import InsufficientDataError, ForecastError
from commodity_forecast.data_science.series_transform import to_log

logger = logging.getLogger(__name__)

DEFAULT_COVARIATES = ['rainfall', 'temperature', 'exchange_rate']

PRICE_COL = 'price'
LOG_PRICE_COL = 'log_price'
DIFF_LOG_COL = 'diff_log_price'
RESERVED_COLUMNS = [PRICE_COL, LOG_PRICE_COL, DIFF_LOG_COL]


@dataclass(frozen=True)
class ObservedPoint:
    """One observed date. diff_log_price is None for the first point of a series."""
    date: pd.Timestamp
    price: float
    log_price: float
    diff_log_price: Optional[float]
    covariates: Mapping[str, float] = field(default_factory=dict)


class ObservedSeries:
    """
    Ordered, contiguous sequence of ObservedPoints backed by a date-indexed DataFrame.

    Columns: price, log_price, diff_log_price, <covariates...>.
    The underlying frame is never handed out directly; accessors return copies.
    """

    def __init__(self, frame: pd.DataFrame, covariate_names: List[str], freq: Optional[str] = None):
        self._frame = frame
        self._covariate_names = list(covariate_names)
        self._freq = freq

    @classmethod
    def from_frame(cls, df: pd.DataFrame,
                   price_col: str = PRICE_COL,
                   date_col: Optional[str] = 'date',
                   covariate_cols: Optional[List[str]] = None,
                   freq: Optional[str] = None) -> 'ObservedSeries':
        """
        Build a validated series from a joined DataFrame.

        Args:
            df: Joined dataset, either with a date column or a DatetimeIndex
            price_col: Raw price column
            date_col: Date column name (ignored if df already has a DatetimeIndex)
            covariate_cols: Exogenous covariate columns (default: rainfall, temperature, exchange_rate)
            freq: Pandas frequency alias used for the contiguity check. Inferred if omitted.

        Raises:
            ForecastError: on missing, reserved or duplicate columns, unordered or gapped dates
            InsufficientDataError: on a missing covariate value
            DomainError: on a non-positive price
        """
        if covariate_cols is None:
            covariate_cols = list(DEFAULT_COVARIATES)

        work = df.copy()
        if not isinstance(work.index, pd.DatetimeIndex):
            if date_col is None or date_col not in work.columns:
                raise ForecastError(f"Dataset needs a DatetimeIndex or a '{date_col}' column")
            work[date_col] = pd.to_datetime(work[date_col], errors='raise')
            work = work.set_index(date_col)
        work.index.name = 'date'

        reserved = [c for c in covariate_cols if c in RESERVED_COLUMNS or c == price_col]
        if reserved:
            raise ForecastError(f"Covariate names clash with reserved columns: {reserved}",
                                {'reserved_columns': reserved})
        if len(set(covariate_cols)) != len(covariate_cols):
            raise ForecastError(f"Duplicate covariate names: {covariate_cols}")

        missing = [c for c in [price_col] + covariate_cols if c not in work.columns]
        if missing:
            raise ForecastError(f"Dataset is missing required columns: {missing}",
                                {'missing_columns': missing})

        if len(work) == 0:
            raise InsufficientDataError("Dataset is empty")

        if not work.index.is_monotonic_increasing or work.index.has_duplicates:
            raise ForecastError("Dataset dates must be strictly increasing")

        freq = cls._check_contiguous(work.index, freq)

        covariates = work[covariate_cols].astype(float)
        nan_counts = covariates.isna().sum()
        if nan_counts.any():
            gaps = {c: int(n) for c, n in nan_counts.items() if n > 0}
            raise InsufficientDataError(f"Missing covariate values: {gaps}", {'missing': gaps})

        prices = work[price_col].astype(float)
        if prices.isna().any():
            raise InsufficientDataError("Missing price values in dataset")
        log_prices = to_log(prices)

        frame = pd.DataFrame({
            PRICE_COL: prices,
            LOG_PRICE_COL: log_prices,
            DIFF_LOG_COL: log_prices.diff(),
        }, index=work.index)
        frame = pd.concat([frame, covariates], axis=1)

        logger.debug(f"ObservedSeries: {len(frame)} points, freq={freq}, covariates={covariate_cols}")
        return cls(frame, covariate_cols, freq)

    @staticmethod
    def _check_contiguous(index: pd.DatetimeIndex, freq: Optional[str]) -> Optional[str]:
        """Ensure no dates are missing at the series frequency."""
        if len(index) < 3 and freq is None:
            return None
        if freq is None:
            freq = pd.infer_freq(index)
            if freq is None:
                raise ForecastError("Cannot infer a regular frequency; dates have gaps or are irregular. "
                                    "Pass freq explicitly.")
            return freq
        expected = pd.date_range(start=index[0], end=index[-1], freq=freq)
        if len(expected) != len(index) or not (expected == index).all():
            raise ForecastError(f"Dates are not contiguous at frequency '{freq}'",
                                {'expected': len(expected), 'found': len(index)})
        return freq

    def _with_frame(self, frame: pd.DataFrame) -> 'ObservedSeries':
        return ObservedSeries(frame, self._covariate_names, self._freq)

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._frame)

    def __iter__(self) -> Iterator[ObservedPoint]:
        return self.points()

    @property
    def dates(self) -> pd.DatetimeIndex:
        return self._frame.index.copy()

    @property
    def covariate_names(self) -> List[str]:
        return list(self._covariate_names)

    @property
    def freq(self) -> Optional[str]:
        return self._freq

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    @property
    def prices(self) -> pd.Series:
        return self._frame[PRICE_COL].copy()

    @property
    def log_prices(self) -> pd.Series:
        return self._frame[LOG_PRICE_COL].copy()

    @property
    def diff_log_prices(self) -> pd.Series:
        return self._frame[DIFF_LOG_COL].copy()

    @property
    def covariates(self) -> pd.DataFrame:
        return self._frame[self._covariate_names].copy()

    def points(self) -> Iterator[ObservedPoint]:
        for date, row in self._frame.iterrows():
            diff = row[DIFF_LOG_COL]
            yield ObservedPoint(
                date=date,
                price=float(row[PRICE_COL]),
                log_price=float(row[LOG_PRICE_COL]),
                diff_log_price=None if np.isnan(diff) else float(diff),
                covariates={c: float(row[c]) for c in self._covariate_names},
            )

    def model_inputs(self, scale: str):
        """
        Response series and aligned covariates on the requested scale.

        'log' keeps every row; 'diff_log' drops rows whose difference is
        undefined (the first point of the full series).

        Returns:
            (series, covariates)
        """
        if scale == 'log':
            series = self._frame[LOG_PRICE_COL]
        elif scale == 'diff_log':
            series = self._frame[DIFF_LOG_COL].dropna()
        else:
            raise ValueError(f"Unknown scale '{scale}'")
        covariates = self._frame.loc[series.index, self._covariate_names]
        return series.copy(), covariates.copy()

    def mask(self, keep: np.ndarray) -> 'ObservedSeries':
        """Sub-series of rows where keep is True (order preserved)."""
        return self._with_frame(self._frame.loc[keep].copy())

    def __repr__(self) -> str:
        if len(self) == 0:
            return "ObservedSeries(empty)"
        return (f"ObservedSeries({len(self)} points, {self._frame.index[0].date()} "
                f"-> {self._frame.index[-1].date()}, covariates={self._covariate_names})")
