"""
Commodity Forecast

Leak-free recursive forecasting of a commodity price series from
known-in-advance covariates, with price-scale comparison of competing
model families.
"""

from .errors import ForecastError, StepFailure
from .data_science.dataset import ObservedSeries
from .data_science.forecast_pipeline import ForecastPipeline, StrategySpec, run_from_config
from .data_science.recursive_engine import RecursiveEngine

__all__ = ['ForecastError', 'StepFailure', 'ObservedSeries', 'ForecastPipeline',
           'StrategySpec', 'RecursiveEngine', 'run_from_config']
