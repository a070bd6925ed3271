"""
Leakage audit.

Perturb the test-suffix prices (x10) and re-run: predictions must not move.
If any predicted price changes, ground truth from the horizon leaked into
the forecast.
"""
import pytest
import pandas as pd
import numpy as np

from commodity_forecast.data_science.dataset import ObservedSeries
from commodity_forecast.data_science.forecast_pipeline import ForecastPipeline, StrategySpec
from commodity_forecast.data_science.model_zoo import (
    NaiveForecaster, ARIMAXForecaster, ETSForecaster, LaggedRegressionForecaster
)


# Helper for leakage detection
def check_pipeline_leakage(strategies, data, cutoff):
    """
    Run the pipeline on the original data and on data whose test-suffix
    prices are multiplied by 10. Returns strategies whose predictions moved.
    """
    base = ForecastPipeline(strategies).run(ObservedSeries.from_frame(data), cutoff)

    perturbed_data = data.copy()
    in_test = pd.to_datetime(perturbed_data['date']) >= pd.Timestamp(cutoff)
    perturbed_data.loc[in_test, 'price'] *= 10
    perturbed = ForecastPipeline(strategies).run(ObservedSeries.from_frame(perturbed_data), cutoff)

    leaks = []
    for name, frame in base.reconstructed.items():
        pred_base = frame['predicted_price'].to_numpy()
        pred_pert = perturbed.reconstructed[name]['predicted_price'].to_numpy()
        if not np.allclose(pred_base, pred_pert, rtol=1e-10):
            leaks.append(name)
        # The actuals must have changed, otherwise the perturbation missed the horizon
        assert not np.allclose(frame['actual_price'], perturbed.reconstructed[name]['actual_price'])
    return leaks


def test_leakage_recursive_strategies(sample_data, cutoff):
    strategies = [
        StrategySpec('lagged_per_step', LaggedRegressionForecaster(lags=2), 'per_step'),
        StrategySpec('lagged_once', LaggedRegressionForecaster(lags=3), 'once'),
    ]
    leaks = check_pipeline_leakage(strategies, sample_data, cutoff)
    assert not leaks, f"Leakage detected in recursive strategies: {leaks}"


def test_leakage_fixed_horizon_strategies(sample_data, cutoff):
    strategies = [
        StrategySpec('naive', NaiveForecaster(drift=True)),
        StrategySpec('arimax', ARIMAXForecaster()),
        StrategySpec('ets', ETSForecaster()),
    ]
    leaks = check_pipeline_leakage(strategies, sample_data, cutoff)
    assert not leaks, f"Leakage detected in fixed-horizon strategies: {leaks}"


def test_perturbing_training_prices_does_move_predictions(sample_data, cutoff):
    """Sanity check for the audit itself: the last training price is the anchor."""
    strategies = [StrategySpec('naive', NaiveForecaster())]
    base = ForecastPipeline(strategies).run(ObservedSeries.from_frame(sample_data), cutoff)

    perturbed_data = sample_data.copy()
    last_train = perturbed_data.index[pd.to_datetime(perturbed_data['date']) < pd.Timestamp(cutoff)][-1]
    perturbed_data.loc[last_train, 'price'] *= 2
    perturbed = ForecastPipeline(strategies).run(ObservedSeries.from_frame(perturbed_data), cutoff)

    np.testing.assert_allclose(perturbed.reconstructed['naive']['predicted_price'],
                               2 * base.reconstructed['naive']['predicted_price'], rtol=1e-10)
