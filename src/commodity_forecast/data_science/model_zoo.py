"""
Model Zoo: concrete Forecaster adapters, one per model family.

Fixed-horizon (fit once, forecast the whole horizon):
- naive:  zero-change (random walk) or mean-drift baseline on diff-log
- ets:    exponential smoothing with additive damped trend on log price (statsmodels)
- arimax: SARIMAX with exogenous covariates on diff-log (statsmodels)

Stepwise (one step at a time, driven by the RecursiveEngine):
- garch:             ARX mean + GARCH(p, q) variance on diff-log (arch)
- lagged_regression: linear regression on [y_{t-1}..y_{t-p}, x_t] (scikit-learn)
- lstm:              LSTM over lag windows, trained once (torch)

Order selection and likelihood optimisation stay inside the libraries;
adapters only translate between the Forecaster contract and each API.
"""

import logging
import threading
import warnings
from typing import Dict, List, Optional, Tuple

import numpy as np
import torch
from arch import arch_model
from sklearn.linear_model import LinearRegression
from sklearn.preprocessing import StandardScaler
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.holtwinters import ExponentialSmoothing
from statsmodels.tsa.statespace.sarimax import SARIMAX

from commodity_forecast.data_science.forecasters import (
    FixedHorizonForecaster, FixedHorizonModel, StepwiseForecaster, StepwiseModel
)
from commodity_forecast.data_science.history import RollingHistory
from commodity_forecast.data_science.sequence_model import (
    SequenceRegressor, train_sequence_model, get_device
)

logger = logging.getLogger(__name__)

# Two-sided 95% normal quantile used for the optional bands
Z_95 = 1.96

# Serialises seeded torch training across pipeline worker threads
_TORCH_SEED_LOCK = threading.Lock()


# ============================================================================
# LAG DESIGN HELPERS
# ============================================================================

def build_lag_design(values: np.ndarray, covariates: np.ndarray, lags: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build the regression design for a lag-p model with same-date covariates.

    Row for target t: [y_{t-1}, ..., y_{t-lags}, x_t]

    Returns:
        X: (n - lags, lags + n_covariates)
        y: (n - lags,)
    """
    n = len(values)
    n_cov = covariates.shape[1]
    X = np.empty((max(0, n - lags), lags + n_cov))
    for row, t in enumerate(range(lags, n)):
        X[row, :lags] = values[t - lags:t][::-1]
        X[row, lags:] = covariates[t]
    return X, np.asarray(values[lags:], dtype=float)


def lag_feature_row(values: np.ndarray, x_next: np.ndarray, lags: int) -> np.ndarray:
    """Feature row for the step after values: [y_{n-1}, ..., y_{n-lags}, x_next]."""
    return np.concatenate([values[-lags:][::-1], x_next]).reshape(1, -1)


def build_sequence_windows(values: np.ndarray, covariates: np.ndarray, window: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Lag-window tensor for the sequence model.

    Sample for target t has `window` timesteps k = t-window+1..t, each with
    features [y_{k-1}, x_k]; the last timestep carries the target date's
    covariates and the response one step before it.

    Returns:
        X: (n - window, window, 1 + n_covariates)
        y: (n - window,)
    """
    n = len(values)
    n_cov = covariates.shape[1]
    X = np.empty((max(0, n - window), window, 1 + n_cov))
    for row, t in enumerate(range(window, n)):
        ks = np.arange(t - window + 1, t + 1)
        X[row, :, 0] = values[ks - 1]
        X[row, :, 1:] = covariates[ks]
    return X, np.asarray(values[window:], dtype=float)


# ============================================================================
# 1. NAIVE BASELINE (fixed horizon)
# ============================================================================

class _NaiveModel(FixedHorizonModel):
    def __init__(self, covariate_names, drift: float, sigma: float):
        super().__init__(covariate_names, 'diff_log')
        self.drift = drift
        self.sigma = sigma

    def _predict(self, horizon_length, future_covariates):
        point = np.full(horizon_length, self.drift)
        return point, point - Z_95 * self.sigma, point + Z_95 * self.sigma


class NaiveForecaster(FixedHorizonForecaster):
    """Random walk on log price: zero expected change, or the training mean change."""
    target_scale = 'diff_log'

    def __init__(self, drift: bool = False, name: Optional[str] = None):
        super().__init__(name or 'naive')
        self.drift = drift

    def _fit(self, series, covariates):
        values = series.to_numpy()
        drift = float(np.mean(values)) if self.drift else 0.0
        sigma = float(np.std(values - drift)) if len(values) > 1 else 0.0
        return _NaiveModel(list(covariates.columns), drift, sigma)


# ============================================================================
# 2. ETS (fixed horizon, log scale)
# ============================================================================

class _ETSModel(FixedHorizonModel):
    def __init__(self, covariate_names, result, sigma: float):
        super().__init__(covariate_names, 'log')
        self.result = result
        self.sigma = sigma

    def _predict(self, horizon_length, future_covariates):
        point = np.asarray(self.result.forecast(horizon_length), dtype=float)
        spread = Z_95 * self.sigma * np.sqrt(np.arange(1, horizon_length + 1))
        return point, point - spread, point + spread


class ETSForecaster(FixedHorizonForecaster):
    """
    Exponential smoothing on log price.

    Covariates are accepted (and schema-checked) but not used by the model.
    """
    target_scale = 'log'

    def __init__(self, trend: Optional[str] = 'add', damped_trend: bool = True,
                 min_observations: int = 10, name: Optional[str] = None):
        super().__init__(name or 'ets')
        self.trend = trend
        self.damped_trend = damped_trend if trend else False
        self.min_observations = min_observations

    @property
    def min_history(self) -> int:
        return self.min_observations

    def _fit(self, series, covariates):
        model = ExponentialSmoothing(series.to_numpy(), trend=self.trend,
                                     damped_trend=self.damped_trend, seasonal=None,
                                     initialization_method='estimated')
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            result = model.fit()
        sigma = float(np.nanstd(np.asarray(result.resid, dtype=float)))
        logger.debug(f"ETS fitted: trend={self.trend}, damped={self.damped_trend}, sigma={sigma:.6f}")
        return _ETSModel(list(covariates.columns), result, sigma)


# ============================================================================
# 3. ARIMAX (fixed horizon, diff-log scale)
# ============================================================================

class _ARIMAXModel(FixedHorizonModel):
    def __init__(self, covariate_names, result, has_exog: bool):
        super().__init__(covariate_names, 'diff_log')
        self.result = result
        self.has_exog = has_exog

    def _predict(self, horizon_length, future_covariates):
        exog = future_covariates.to_numpy(dtype=float) if self.has_exog else None
        forecast = self.result.get_forecast(steps=horizon_length, exog=exog)
        point = np.asarray(forecast.predicted_mean, dtype=float)
        ci = np.asarray(forecast.conf_int(alpha=0.05), dtype=float)
        return point, ci[:, 0], ci[:, 1]


class ARIMAXForecaster(FixedHorizonForecaster):
    """SARIMAX(p, d, q) with the covariates as exogenous regressors. The order is fixed by config."""
    target_scale = 'diff_log'

    def __init__(self, order: Tuple[int, int, int] = (1, 0, 0), trend: str = 'c',
                 min_observations: int = 10, name: Optional[str] = None):
        super().__init__(name or 'arimax')
        self.order = tuple(int(o) for o in order)
        self.trend = trend
        self.min_observations = min_observations

    @property
    def min_history(self) -> int:
        return max(self.min_observations, sum(self.order) + 2)

    def _fit(self, series, covariates):
        has_exog = covariates.shape[1] > 0
        model = SARIMAX(series.to_numpy(),
                        exog=covariates.to_numpy() if has_exog else None,
                        order=self.order,
                        seasonal_order=(0, 0, 0, 0),
                        trend=self.trend,
                        enforce_stationarity=False,
                        enforce_invertibility=False)
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            result = model.fit(disp=False)
        logger.debug(f"ARIMAX{self.order} fitted: aic={result.aic:.2f}")
        return _ARIMAXModel(list(covariates.columns), result, has_exog)


# ============================================================================
# 4. GARCH (stepwise, diff-log scale)
# ============================================================================

class _GARCHModel(StepwiseModel):
    """
    Fitted ARX-GARCH parameters applied to whatever history is supplied.

    Mean:     mu_t = c + sum_k phi_k y_{t-k} + beta' x_t
    Variance: s2_t = omega + sum_i alpha_i e_{t-i}^2 + sum_j b_j s2_{t-j}
    """

    def __init__(self, covariate_names, lags, p, q, multiplier, mean_params, vol_params,
                 eps_tail, var_tail, n_fit):
        super().__init__(covariate_names, 'diff_log')
        self.lags = lags
        self.p = p
        self.q = q
        self.multiplier = multiplier
        self.const = mean_params[0]
        self.phi = mean_params[1:1 + lags]
        self.beta = mean_params[1 + lags:]
        self.omega = vol_params[0]
        self.alpha = vol_params[1:1 + p]
        self.garch = vol_params[1 + p:1 + p + q]
        self.eps_tail = list(eps_tail)
        self.var_tail = list(var_tail)
        self.n_fit = n_fit

    def _mean(self, scaled_values: np.ndarray, x: np.ndarray) -> float:
        lagged = scaled_values[-self.lags:][::-1]
        return float(self.const + self.phi @ lagged + self.beta @ x)

    def _next_variance(self, eps: List[float], var: List[float]) -> float:
        s2 = self.omega
        for i in range(1, self.p + 1):
            s2 += self.alpha[i - 1] * eps[-i] ** 2
        for j in range(1, self.q + 1):
            s2 += self.garch[j - 1] * var[-j]
        return float(s2)

    def _predict_one(self, history: RollingHistory, x_next):
        scaled = history.values * self.multiplier
        cov = history.covariate_matrix

        # Roll the variance recursion over entries appended since the fit
        eps, var = list(self.eps_tail), list(self.var_tail)
        for j in range(self.n_fit, len(scaled)):
            var.append(self._next_variance(eps, var))
            eps.append(scaled[j] - self._mean(scaled[:j], cov[j]))

        mean = self._mean(scaled, x_next)
        sd = np.sqrt(max(self._next_variance(eps, var), 0.0))
        point = mean / self.multiplier
        return point, (mean - Z_95 * sd) / self.multiplier, (mean + Z_95 * sd) / self.multiplier


class GARCHForecaster(StepwiseForecaster):
    """
    ARX(lags) mean with GARCH(p, q) errors.

    Values are multiplied by `scale` before fitting (diff-log returns are
    tiny and the optimiser prefers percent units) and divided back out.
    """
    target_scale = 'diff_log'

    def __init__(self, lags: int = 2, p: int = 1, q: int = 1, dist: str = 'normal',
                 scale: float = 100.0, min_observations: int = 30, name: Optional[str] = None):
        super().__init__(name or 'garch')
        self.lags = int(lags)
        if self.lags < 1:
            raise ValueError(f"lags must be >= 1, got {lags}")
        self.p = int(p)
        self.q = int(q)
        self.dist = dist
        self.scale = float(scale)
        self.min_observations = min_observations

    @property
    def min_history(self) -> int:
        return max(self.lags + 1, self.min_observations)

    def _fit(self, series, covariates):
        y = series.to_numpy() * self.scale
        n_cov = covariates.shape[1]
        x = covariates.to_numpy() if n_cov else None

        am = arch_model(y, x=x, mean='ARX', lags=self.lags, vol='GARCH',
                        p=self.p, q=self.q, dist=self.dist, rescale=False)
        res = am.fit(disp='off')

        params = np.asarray(res.params, dtype=float)
        n_mean = 1 + self.lags + n_cov
        mean_params = params[:n_mean]
        vol_params = params[n_mean:n_mean + 1 + self.p + self.q]

        resid = np.asarray(res.resid, dtype=float)
        cond_var = np.asarray(res.conditional_volatility, dtype=float) ** 2
        eps_tail = resid[-self.p:] if self.p else np.array([])
        var_tail = cond_var[-self.q:] if self.q else np.array([])

        logger.debug(f"GARCH fitted on {len(y)} obs: loglik={res.loglikelihood:.2f}")
        return _GARCHModel(list(covariates.columns), self.lags, self.p, self.q, self.scale,
                           mean_params, vol_params, eps_tail, var_tail, len(y))


# ============================================================================
# 5. LAGGED REGRESSION (stepwise, diff-log scale)
# ============================================================================

class _LaggedRegressionModel(StepwiseModel):
    def __init__(self, covariate_names, lags, regressor, sigma):
        super().__init__(covariate_names, 'diff_log')
        self.lags = lags
        self.regressor = regressor
        self.sigma = sigma

    def _predict_one(self, history: RollingHistory, x_next):
        features = lag_feature_row(history.values, x_next, self.lags)
        point = float(self.regressor.predict(features)[0])
        return point, point - Z_95 * self.sigma, point + Z_95 * self.sigma


class LaggedRegressionForecaster(StepwiseForecaster):
    """
    Linear regression of y_t on its `lags` most recent values and same-date covariates.

    Lag features always come from the history passed in, so at forecast time
    they are real training values or the engine's own earlier predictions.
    """
    target_scale = 'diff_log'

    def __init__(self, lags: int = 2, fit_intercept: bool = True, name: Optional[str] = None):
        super().__init__(name or 'lagged_regression')
        self.lags = int(lags)
        if self.lags < 1:
            raise ValueError(f"lags must be >= 1, got {lags}")
        self.fit_intercept = fit_intercept

    @property
    def min_history(self) -> int:
        return self.lags + 1

    def _fit(self, series, covariates):
        X, y = build_lag_design(series.to_numpy(), covariates.to_numpy(), self.lags)
        regressor = LinearRegression(fit_intercept=self.fit_intercept)
        regressor.fit(X, y)
        resid = y - regressor.predict(X)
        sigma = float(np.std(resid)) if len(resid) > 1 else 0.0
        return _LaggedRegressionModel(list(covariates.columns), self.lags, regressor, sigma)


# ============================================================================
# 6. LSTM (stepwise, trained once on a lag-window design matrix)
# ============================================================================

class _LSTMModel(StepwiseModel):
    def __init__(self, covariate_names, window, network, y_scaler, x_scaler):
        super().__init__(covariate_names, 'diff_log')
        self.window = window
        self.network = network
        self.y_scaler = y_scaler
        self.x_scaler = x_scaler

    def _predict_one(self, history: RollingHistory, x_next):
        values = history.values
        cov = history.covariate_matrix
        n = len(values)

        # Timesteps k = n-window+1..n, where n is the step being predicted
        seq_y = values[n - self.window:n]
        seq_x = np.vstack([cov[n - self.window + 1:n], x_next.reshape(1, -1)])

        y_s = self.y_scaler.transform(seq_y.reshape(-1, 1))
        x_s = self.x_scaler.transform(seq_x) if self.x_scaler is not None else seq_x
        window_input = np.concatenate([y_s, x_s], axis=1)[np.newaxis, :, :]

        pred_scaled = self.network.predict(window_input)
        point = float(self.y_scaler.inverse_transform(pred_scaled.reshape(-1, 1))[0, 0])
        return point, None, None


class LSTMForecaster(StepwiseForecaster):
    """
    LSTM on lag windows of [y_{k-1}, x_k].

    Trained once (default refit policy 'once'); the engine feeds it the
    rolling history, so later windows contain its own prior predictions.
    """
    target_scale = 'diff_log'
    default_refit_policy = 'once'

    def __init__(self, window: int = 4, hidden_size: int = 16, num_layers: int = 1,
                 epochs: int = 100, batch_size: int = 32, lr: float = 0.01,
                 seed: int = 42, use_gpu=False, name: Optional[str] = None):
        super().__init__(name or 'lstm')
        self.window = int(window)
        if self.window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self.hidden_size = hidden_size
        self.num_layers = num_layers
        self.epochs = epochs
        self.batch_size = batch_size
        self.lr = lr
        self.seed = seed
        self.use_gpu = use_gpu

    @property
    def min_history(self) -> int:
        return self.window + 1

    def _fit(self, series, covariates):
        values = series.to_numpy()
        cov = covariates.to_numpy()

        y_scaler = StandardScaler().fit(values.reshape(-1, 1))
        x_scaler = StandardScaler().fit(cov) if cov.shape[1] else None
        values_s = y_scaler.transform(values.reshape(-1, 1)).ravel()
        cov_s = x_scaler.transform(cov) if x_scaler is not None else cov

        X, y = build_sequence_windows(values_s, cov_s, self.window)

        # torch draws initial weights from its process-wide generator
        with _TORCH_SEED_LOCK:
            torch.manual_seed(self.seed)
            network = SequenceRegressor(features_per_step=X.shape[2], hidden_size=self.hidden_size,
                                        num_layers=self.num_layers)
            network, history = train_sequence_model(network, X, y, epochs=self.epochs,
                                                    batch_size=self.batch_size, lr=self.lr,
                                                    seed=self.seed, device=get_device(self.use_gpu))
        return _LSTMModel(list(covariates.columns), self.window, network, y_scaler, x_scaler)


# ============================================================================
# MODEL REGISTRY - Factory for creating forecasters by name
# ============================================================================

FORECASTER_REGISTRY = {
    'naive': {
        'class': NaiveForecaster,
        'default_config': {'drift': False},
        'description': 'Random-walk baseline on log price'
    },
    'ets': {
        'class': ETSForecaster,
        'default_config': {'trend': 'add', 'damped_trend': True, 'min_observations': 10},
        'description': 'Exponential smoothing (damped additive trend) on log price'
    },
    'arimax': {
        'class': ARIMAXForecaster,
        'default_config': {'order': (1, 0, 0), 'trend': 'c', 'min_observations': 10},
        'description': 'SARIMAX with exogenous covariates on diff-log price'
    },
    'garch': {
        'class': GARCHForecaster,
        'default_config': {'lags': 2, 'p': 1, 'q': 1, 'dist': 'normal', 'scale': 100.0,
                           'min_observations': 30},
        'description': 'ARX mean + GARCH variance, stepwise'
    },
    'lagged_regression': {
        'class': LaggedRegressionForecaster,
        'default_config': {'lags': 2, 'fit_intercept': True},
        'description': 'Linear regression on lagged diff-log + covariates, stepwise'
    },
    'lstm': {
        'class': LSTMForecaster,
        'default_config': {'window': 4, 'hidden_size': 16, 'num_layers': 1, 'epochs': 100,
                           'batch_size': 32, 'lr': 0.01, 'seed': 42, 'use_gpu': False},
        'description': 'LSTM over lag windows, trained once'
    },
}


def create_forecaster(model_type: str, config: Dict = None, name: Optional[str] = None):
    """
    Factory function to create a forecaster by registry name.

    Args:
        model_type: Registry key ('naive', 'ets', 'arimax', 'garch', 'lagged_regression', 'lstm')
        config: Parameter overrides; unknown keys are ignored with a warning
        name: Display name (default: model_type)

    Returns:
        Forecaster instance

    Example:
        forecaster = create_forecaster('lagged_regression', {'lags': 3})
    """
    if model_type not in FORECASTER_REGISTRY:
        available = list(FORECASTER_REGISTRY.keys())
        raise ValueError(f"Unknown model type '{model_type}'. Available: {available}")

    model_info = FORECASTER_REGISTRY[model_type]
    model_config = {**model_info['default_config']}

    for key, value in (config or {}).items():
        if key in model_config:
            model_config[key] = value
        else:
            logger.warning(f"Ignoring unknown parameter '{key}' for model '{model_type}'")

    return model_info['class'](name=name or model_type, **model_config)


def get_available_forecasters() -> List[str]:
    """Return list of all available forecaster types."""
    return list(FORECASTER_REGISTRY.keys())


def get_forecaster_info(model_type: str) -> Optional[Dict]:
    """Get information about a forecaster type."""
    if model_type not in FORECASTER_REGISTRY:
        return None
    info = FORECASTER_REGISTRY[model_type].copy()
    info['name'] = model_type
    return info
