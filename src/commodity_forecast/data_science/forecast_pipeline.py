"""
Forecast Pipeline: split -> forecast -> reconstruct -> score -> rank.

Runs every configured strategy against the same training prefix and scores
each on the same testing suffix, on the price scale.

- Fixed-horizon strategies are fitted once and predict the whole horizon.
- Stepwise strategies go through the RecursiveEngine.
- The engine and the forecasters only ever see the training response and the
  covariates; test-suffix prices are used for scoring alone.

Error policy:
- Transform / split errors abort the whole run.
- A strategy's ForecastError (including StepFailure) is logged and recorded in
  `failures`; the remaining strategies still run and are ranked.

Usage:
    pipeline = ForecastPipeline.from_config(config)
    result = pipeline.run(series, cutoff_date='2022-01-01')
    print(result.leaderboard)
"""

import copy
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from commodity_forecast.errors import ForecastError
from commodity_forecast.log_utils import configure_logging
from commodity_forecast.data_science.dataset import ObservedSeries
from commodity_forecast.data_science.evaluation import AccuracyRecord, score, rank, leaderboard
from commodity_forecast.data_science.forecasters import Forecaster, StepwiseForecaster
from commodity_forecast.data_science.model_zoo import create_forecaster
from commodity_forecast.data_science.reconstructor import build_reconstructed_series
from commodity_forecast.data_science.recursive_engine import RecursiveEngine
from commodity_forecast.data_science.time_split import split

logger = logging.getLogger(__name__)


@dataclass
class StrategySpec:
    """One competing strategy: a forecaster plus (for stepwise models) its refit policy."""
    name: str
    forecaster: Forecaster
    refit_policy: Optional[str] = None


@dataclass
class PipelineResult:
    """Everything the external reporting layer needs."""
    cutoff: pd.Timestamp
    anchor_log_price: float
    records: Dict[str, AccuracyRecord] = field(default_factory=dict)
    reconstructed: Dict[str, pd.DataFrame] = field(default_factory=dict)
    failures: Dict[str, ForecastError] = field(default_factory=dict)
    best_model: Optional[str] = None
    leaderboard: pd.DataFrame = field(default_factory=pd.DataFrame)


class ForecastPipeline:
    """
    Orchestrates competing strategies over one train/test split.

    Args:
        strategies: StrategySpecs, names must be unique (order breaks RMSE ties)
        max_workers: >1 evaluates strategies concurrently on threads; each
                     strategy gets its own copy of the data
        step_budget: Per-step wall-clock budget (seconds) for stepwise runs
    """

    def __init__(self, strategies: List[StrategySpec], max_workers: int = 1,
                 step_budget: Optional[float] = None):
        names = [s.name for s in strategies]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate strategy names: {duplicates}")
        self.strategies = list(strategies)
        self.max_workers = max(1, int(max_workers))
        self.step_budget = step_budget

    @classmethod
    def from_config(cls, config: dict) -> 'ForecastPipeline':
        """
        Build from a validated configuration dict.

        Reads:
            strategies.<name>: {model, enabled, refit_policy, params}
            evaluation.max_workers
            engine.step_budget_seconds
        """
        strategies = []
        for name, settings in (config.get('strategies') or {}).items():
            settings = settings or {}
            if not settings.get('enabled', True):
                logger.info(f"Strategy '{name}' disabled in config")
                continue
            forecaster = create_forecaster(settings.get('model', name), settings.get('params', {}), name=name)
            strategies.append(StrategySpec(name, forecaster, settings.get('refit_policy')))

        evaluation = config.get('evaluation', {}) or {}
        engine = config.get('engine', {}) or {}
        return cls(strategies,
                   max_workers=evaluation.get('max_workers', 1),
                   step_budget=engine.get('step_budget_seconds'))

    def run(self, series: ObservedSeries, cutoff_date) -> PipelineResult:
        """
        Split at cutoff_date, run all strategies, score and rank them.

        Raises:
            EmptyPartitionError: degenerate cutoff (aborts the whole run)
        """
        logger.info("=" * 60)
        logger.info("FORECAST PIPELINE")
        logger.info("=" * 60)

        train, test = split(series, cutoff_date)
        anchor = float(train.log_prices.iloc[-1])
        result = PipelineResult(cutoff=pd.Timestamp(cutoff_date), anchor_log_price=anchor)

        logger.info(f"Train: {len(train)} points ({train.dates[0].date()} -> {train.dates[-1].date()})")
        logger.info(f"Test:  {len(test)} points ({test.dates[0].date()} -> {test.dates[-1].date()})")
        logger.info(f"Strategies: {[s.name for s in self.strategies]}")

        if self.max_workers > 1 and len(self.strategies) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = {
                    spec.name: pool.submit(self._run_isolated, spec, copy.deepcopy(train),
                                           copy.deepcopy(test), anchor)
                    for spec in self.strategies
                }
                outcomes = {name: future.result() for name, future in futures.items()}
        else:
            outcomes = {spec.name: self._run_isolated(spec, copy.deepcopy(train), copy.deepcopy(test), anchor)
                        for spec in self.strategies}

        for spec in self.strategies:
            outcome = outcomes[spec.name]
            if isinstance(outcome, ForecastError):
                result.failures[spec.name] = outcome
            else:
                record, reconstructed = outcome
                result.records[spec.name] = record
                result.reconstructed[spec.name] = reconstructed

        records = list(result.records.values())
        result.leaderboard = leaderboard(records)
        if records:
            result.best_model = rank(records)
            logger.info(f"Best model: {result.best_model} (RMSE={result.records[result.best_model].rmse:.4f})")
        else:
            logger.warning("Every strategy failed; nothing to rank")

        if result.failures:
            logger.warning(f"Failed strategies: {sorted(result.failures)}")
        return result

    def _run_isolated(self, spec: StrategySpec, train: ObservedSeries, test: ObservedSeries, anchor: float):
        """Run one strategy; a ForecastError is returned instead of raised."""
        try:
            return self.run_strategy(spec, train, test, anchor)
        except ForecastError as e:
            logger.error(f"Strategy '{spec.name}' failed: {e}")
            return e

    def run_strategy(self, spec: StrategySpec, train: ObservedSeries, test: ObservedSeries,
                     anchor: float):
        """
        Forecast, reconstruct and score one strategy.

        Returns:
            (AccuracyRecord, ReconstructedSeries DataFrame)
        """
        logger.info(f"--- {spec.name} ({spec.forecaster.variant}, scale={spec.forecaster.target_scale}) ---")
        forecaster = spec.forecaster
        train_series, train_covariates = train.model_inputs(forecaster.target_scale)
        test_covariates = test.covariates

        if isinstance(forecaster, StepwiseForecaster):
            engine = RecursiveEngine(forecaster, refit_policy=spec.refit_policy, step_budget=self.step_budget)
            results = engine.run(train_series, train_covariates, test_covariates)
        else:
            if spec.refit_policy is not None:
                logger.warning(f"refit_policy ignored for fixed-horizon strategy '{spec.name}'")
            fitted = forecaster.fit(train_series, train_covariates)
            results = fitted.predict(len(test), test_covariates)

        reconstructed = build_reconstructed_series(anchor, results, test.prices)
        record = score(reconstructed['predicted_price'], reconstructed['actual_price'], spec.name)
        logger.info(f"  [{spec.name}] RMSE={record.rmse:.4f} MAE={record.mae:.4f} MAPE={record.mape:.2f}%")
        return record, reconstructed


def run_from_config(df: pd.DataFrame, config: dict) -> PipelineResult:
    """
    Convenience entry point: build the ObservedSeries from a joined DataFrame
    using the `data` section, then run at `evaluation.cutoff_date`.
    Console logging is configured from `logging.level`.
    """
    configure_logging((config.get('logging', {}) or {}).get('level', 'INFO'))

    data_cfg = config.get('data', {}) or {}
    series = ObservedSeries.from_frame(
        df,
        price_col=data_cfg.get('price_column', 'price'),
        date_col=data_cfg.get('date_column', 'date'),
        covariate_cols=data_cfg.get('covariates'),
        freq=data_cfg.get('frequency'),
    )
    cutoff = (config.get('evaluation', {}) or {}).get('cutoff_date')
    if cutoff is None:
        raise ForecastError("evaluation.cutoff_date is required")
    return ForecastPipeline.from_config(config).run(series, cutoff)
