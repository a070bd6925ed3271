"""
RollingHistory: the recursive engine's working state.

An ordered run of scalar response values (log or diff-log scale, never raw
price) with aligned dates and covariate rows. Entries are either real
training observations or the engine's own prior predictions ("synthetic").

The history is a value: extended() returns a new history and leaves the
original untouched, so no state survives between engine runs.
"""

from typing import List, Optional

import numpy as np
import pandas as pd

from commodity_forecast.errors import LeakageError, ShapeMismatchError, InsufficientDataError


class RollingHistory:
    """Immutable, strictly date-ordered response + covariate history."""

    def __init__(self, dates: pd.DatetimeIndex, values: np.ndarray,
                 covariates: np.ndarray, covariate_names: List[str],
                 synthetic: Optional[np.ndarray] = None):
        self._dates = pd.DatetimeIndex(dates)
        self._values = np.asarray(values, dtype=float)
        self._covariates = np.asarray(covariates, dtype=float).reshape(len(self._values), len(covariate_names))
        self._covariate_names = list(covariate_names)
        if synthetic is None:
            synthetic = np.zeros(len(self._values), dtype=bool)
        self._synthetic = np.asarray(synthetic, dtype=bool)

    @classmethod
    def seed(cls, series: pd.Series, covariates: pd.DataFrame) -> 'RollingHistory':
        """Seed from the training prefix: real values and their covariate rows."""
        if not series.index.equals(covariates.index):
            raise ShapeMismatchError("Seed series and covariates are not aligned on dates")
        if covariates.isna().to_numpy().any() or series.isna().any():
            raise InsufficientDataError("Seed history contains missing values")
        if not series.index.is_monotonic_increasing or series.index.has_duplicates:
            raise LeakageError("Seed history dates must be strictly increasing")
        return cls(series.index, series.to_numpy(dtype=float),
                   covariates.to_numpy(dtype=float), list(covariates.columns))

    def extended(self, date, value: float, covariate_row: pd.Series,
                 synthetic: bool = True) -> 'RollingHistory':
        """
        Return a new history with exactly one entry appended.

        Raises:
            LeakageError: if date is not strictly after the last date
            ShapeMismatchError: if the covariate row's fields differ
        """
        date = pd.Timestamp(date)
        if len(self) and date <= self.last_date:
            raise LeakageError(f"Cannot append {date} after {self.last_date}: history must stay in the past",
                               {'date': str(date), 'last_date': str(self.last_date)})
        if set(covariate_row.index) != set(self._covariate_names):
            raise ShapeMismatchError(f"Covariate fields {sorted(covariate_row.index)} "
                                     f"!= history fields {sorted(self._covariate_names)}")

        row = covariate_row[self._covariate_names].to_numpy(dtype=float).reshape(1, -1)
        return RollingHistory(
            self._dates.append(pd.DatetimeIndex([date])),
            np.append(self._values, float(value)),
            np.vstack([self._covariates, row]),
            self._covariate_names,
            np.append(self._synthetic, bool(synthetic)),
        )

    def __len__(self) -> int:
        return len(self._values)

    @property
    def dates(self) -> pd.DatetimeIndex:
        return self._dates.copy()

    @property
    def last_date(self) -> Optional[pd.Timestamp]:
        return self._dates[-1] if len(self._dates) else None

    @property
    def values(self) -> np.ndarray:
        return self._values.copy()

    @property
    def covariate_names(self) -> List[str]:
        return list(self._covariate_names)

    @property
    def covariate_matrix(self) -> np.ndarray:
        return self._covariates.copy()

    @property
    def covariates(self) -> pd.DataFrame:
        return pd.DataFrame(self._covariates, index=self._dates, columns=self._covariate_names)

    @property
    def series(self) -> pd.Series:
        return pd.Series(self._values, index=self._dates)

    @property
    def synthetic(self) -> np.ndarray:
        return self._synthetic.copy()

    @property
    def n_synthetic(self) -> int:
        return int(self._synthetic.sum())

    def __repr__(self) -> str:
        return f"RollingHistory(n={len(self)}, synthetic={self.n_synthetic}, last_date={self.last_date})"
