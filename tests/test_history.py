import pytest
import numpy as np
import pandas as pd

from commodity_forecast.errors import LeakageError, ShapeMismatchError, InsufficientDataError
from commodity_forecast.data_science.history import RollingHistory


@pytest.fixture
def seed_history(observed_series):
    series, covariates = observed_series.model_inputs('diff_log')
    return RollingHistory.seed(series.iloc[:10], covariates.iloc[:10])


def _row(names, date, value=1.0):
    return pd.Series({n: value for n in names}, name=pd.Timestamp(date))


class TestRollingHistory:

    def test_seed_is_all_real(self, seed_history):
        assert len(seed_history) == 10
        assert seed_history.n_synthetic == 0
        assert seed_history.covariate_matrix.shape == (10, 3)

    def test_extended_returns_new_value(self, seed_history):
        next_date = seed_history.last_date + pd.offsets.MonthBegin(1)
        grown = seed_history.extended(next_date, 0.05, _row(seed_history.covariate_names, next_date))
        assert len(seed_history) == 10
        assert len(grown) == 11
        assert grown.last_date == next_date
        assert grown.values[-1] == pytest.approx(0.05)
        assert grown.n_synthetic == 1
        assert grown.synthetic[-1]
        np.testing.assert_array_equal(grown.values[:10], seed_history.values)

    def test_extended_reorders_covariate_fields(self, seed_history):
        next_date = seed_history.last_date + pd.offsets.MonthBegin(1)
        row = pd.Series({'exchange_rate': 3.0, 'rainfall': 1.0, 'temperature': 2.0})
        grown = seed_history.extended(next_date, 0.0, row)
        np.testing.assert_array_equal(grown.covariate_matrix[-1], [1.0, 2.0, 3.0])

    def test_rejects_non_future_date(self, seed_history):
        with pytest.raises(LeakageError):
            seed_history.extended(seed_history.last_date, 0.0,
                                  _row(seed_history.covariate_names, seed_history.last_date))

    def test_rejects_changed_fields(self, seed_history):
        next_date = seed_history.last_date + pd.offsets.MonthBegin(1)
        with pytest.raises(ShapeMismatchError):
            seed_history.extended(next_date, 0.0, _row(['rainfall', 'humidity'], next_date))

    def test_accessors_are_copies(self, seed_history):
        values = seed_history.values
        values[:] = 99.0
        assert not np.any(seed_history.values == 99.0)

    def test_series_and_covariates_frames(self, seed_history):
        assert seed_history.series.index.equals(seed_history.dates)
        assert list(seed_history.covariates.columns) == seed_history.covariate_names


class TestRollingHistorySeed:

    def test_misaligned(self, observed_series):
        series, covariates = observed_series.model_inputs('diff_log')
        with pytest.raises(ShapeMismatchError):
            RollingHistory.seed(series.iloc[:10], covariates.iloc[1:11])

    def test_missing_values(self, observed_series):
        series, covariates = observed_series.model_inputs('diff_log')
        series = series.iloc[:10].copy()
        series.iloc[3] = np.nan
        with pytest.raises(InsufficientDataError):
            RollingHistory.seed(series, covariates.iloc[:10])
