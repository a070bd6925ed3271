import pytest
import pandas as pd
import numpy as np

from commodity_forecast.data_science.dataset import ObservedSeries

CUTOFF = '2022-01-01'


@pytest.fixture
def sample_data():
    """Joined monthly price + covariate table (120 months, 2014-01 .. 2023-12)."""
    dates = pd.date_range(start='2014-01-01', periods=120, freq='MS')
    rng = np.random.RandomState(42)
    rainfall = rng.gamma(2.0, 40.0, 120)
    temperature = 22 + 6 * np.sin(2 * np.pi * np.arange(120) / 12) + rng.normal(0, 1, 120)
    exchange_rate = 4.5 + np.cumsum(rng.normal(0, 0.02, 120))

    # Log returns driven by the covariates plus noise; prices stay positive by construction
    log_returns = (0.002 - 0.0001 * (rainfall - 80) + 0.01 * (exchange_rate - 4.5)
                   + rng.normal(0, 0.02, 120))
    prices = 250 * np.exp(np.cumsum(log_returns))

    return pd.DataFrame({
        'date': dates,
        'price': prices,
        'rainfall': rainfall,
        'temperature': temperature,
        'exchange_rate': exchange_rate,
    })


@pytest.fixture
def observed_series(sample_data):
    return ObservedSeries.from_frame(sample_data)


@pytest.fixture
def cutoff():
    return CUTOFF


@pytest.fixture
def valid_config():
    """Minimal valid config dictionary."""
    return {
        'data': {
            'price_column': 'price',
            'date_column': 'date',
            'covariates': ['rainfall', 'temperature', 'exchange_rate'],
            'frequency': 'MS',
        },
        'evaluation': {'cutoff_date': CUTOFF, 'max_workers': 1},
        'engine': {'step_budget_seconds': None},
        'strategies': {
            'naive': {'model': 'naive'},
            'lagged_regression': {'model': 'lagged_regression', 'refit_policy': 'per_step',
                                  'params': {'lags': 2}},
        },
        'logging': {'level': 'INFO'},
    }
