import pytest
import numpy as np
import pandas as pd

from commodity_forecast.errors import DomainError, LengthMismatchError
from commodity_forecast.data_science.forecasters import ForecastResult
from commodity_forecast.data_science.reconstructor import (
    reconstruct_to_price, to_diff_scale, build_reconstructed_series
)

DATES = pd.date_range('2022-01-01', periods=3, freq='MS')
ANCHOR = np.log(100.0)


def _results(values, scale='diff_log', bands=None):
    out = []
    for date, v in zip(DATES, values):
        lower, upper = (None, None) if bands is None else (v - bands, v + bands)
        out.append(ForecastResult(date=date, point_prediction=v, lower=lower, upper=upper, scale=scale))
    return out


@pytest.fixture
def actual():
    return pd.Series([101.0, 99.0, 104.0], index=DATES)


class TestReconstructToPrice:

    def test_zero_diffs_hold_anchor_price(self):
        np.testing.assert_allclose(reconstruct_to_price(ANCHOR, [0.0, 0.0, 0.0]), [100.0, 100.0, 100.0])

    def test_cumulative(self):
        diffs = [np.log(1.1), np.log(1.1), -np.log(1.21)]
        np.testing.assert_allclose(reconstruct_to_price(ANCHOR, diffs), [110.0, 121.0, 100.0])


class TestToDiffScale:

    def test_diff_results_pass_through(self):
        np.testing.assert_allclose(to_diff_scale(ANCHOR, _results([0.1, 0.2, 0.3])), [0.1, 0.2, 0.3])

    def test_log_results_converted_against_anchor(self):
        levels = [ANCHOR + 0.1, ANCHOR + 0.3, ANCHOR + 0.2]
        np.testing.assert_allclose(to_diff_scale(ANCHOR, _results(levels, scale='log')), [0.1, 0.2, -0.1])

    def test_mixed_scales_rejected(self):
        results = _results([0.1, 0.2, 0.3])
        results[1] = ForecastResult(DATES[1], 4.6, scale='log')
        with pytest.raises(ValueError):
            to_diff_scale(ANCHOR, results)

    def test_empty(self):
        assert to_diff_scale(ANCHOR, []).size == 0


class TestBuildReconstructedSeries:

    def test_columns_and_index(self, actual):
        frame = build_reconstructed_series(ANCHOR, _results([0.0, 0.0, 0.0]), actual)
        assert list(frame.columns) == ['predicted_price', 'actual_price']
        assert frame.index.equals(DATES)
        assert frame.index.name == 'date'
        np.testing.assert_allclose(frame['actual_price'], actual.to_numpy())

    def test_log_and_diff_scale_agree(self, actual):
        diffs = [0.01, -0.02, 0.015]
        levels = list(ANCHOR + np.cumsum(diffs))
        from_diffs = build_reconstructed_series(ANCHOR, _results(diffs), actual)
        from_levels = build_reconstructed_series(ANCHOR, _results(levels, scale='log'), actual)
        np.testing.assert_allclose(from_diffs['predicted_price'], from_levels['predicted_price'])

    def test_bands_bracket_point(self, actual):
        frame = build_reconstructed_series(ANCHOR, _results([0.01, 0.02, 0.0], bands=0.05), actual)
        assert (frame['lower_price'] < frame['predicted_price']).all()
        assert (frame['predicted_price'] < frame['upper_price']).all()

    def test_length_mismatch(self, actual):
        with pytest.raises(LengthMismatchError):
            build_reconstructed_series(ANCHOR, _results([0.0, 0.0]), actual)

    def test_overflowing_prices_rejected(self, actual):
        with pytest.raises(DomainError) as exc:
            build_reconstructed_series(ANCHOR, _results([0.0, 800.0, 0.0]), actual)
        assert exc.value.details['first_date'] == str(DATES[1])

    def test_nan_prediction_rejected(self, actual):
        with pytest.raises(DomainError):
            build_reconstructed_series(ANCHOR, _results([0.0, np.nan, 0.0]), actual)

    def test_date_mismatch(self, actual):
        shifted = actual.copy()
        shifted.index = DATES + pd.offsets.MonthBegin(1)
        with pytest.raises(LengthMismatchError):
            build_reconstructed_series(ANCHOR, _results([0.0, 0.0, 0.0]), shifted)
