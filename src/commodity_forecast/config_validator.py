import logging
import os

import pandas as pd
from pandas.tseries.frequencies import to_offset
import yaml

from commodity_forecast.errors import ConfigError
from commodity_forecast.data_science.forecasters import StepwiseForecaster
from commodity_forecast.data_science.model_zoo import FORECASTER_REGISTRY
from commodity_forecast.data_science.recursive_engine import VALID_REFIT_POLICIES

logger = logging.getLogger(__name__)


class ConfigValidator:
    """
    Validates configuration.yml against the codebase capabilities.
    Enforces schemas, detects dead parameters, and flags leakage-prone settings.
    """

    VALID_SECTIONS = {'data', 'evaluation', 'engine', 'strategies', 'logging'}
    VALID_LOG_LEVELS = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}

    def __init__(self, config_path=None, config_dict=None):
        if config_dict is not None:  # Check for not None, as empty dict is valid input type
            self.config = config_dict
        elif config_path:
            with open(config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        else:
            raise ValueError("Must provide config_path or config_dict")

        self.registry = FORECASTER_REGISTRY
        self.strategies = self.config.get('strategies', {}) or {}

    def validate(self):
        """Run all validation checks."""
        issues = []
        issues.extend(self._validate_sections())
        issues.extend(self._validate_data())
        issues.extend(self._validate_evaluation())
        issues.extend(self._validate_engine())
        issues.extend(self._validate_strategies())
        issues.extend(self._validate_logging())

        return issues

    def _validate_sections(self):
        """Flag unknown top-level sections (usually typos)."""
        issues = []
        for section in self.config:
            if section not in self.VALID_SECTIONS:
                issues.append(("WARNING", f"Unknown config section '{section}' is ignored. "
                                          f"Valid sections: {sorted(self.VALID_SECTIONS)}"))
        return issues

    def _validate_data(self):
        issues = []
        data = self.config.get('data', {}) or {}
        covariates = data.get('covariates')

        if covariates is not None:
            if not isinstance(covariates, list):
                issues.append(("ERROR", f"data.covariates must be a list, got {type(covariates)}"))
            elif len(set(covariates)) != len(covariates):
                issues.append(("ERROR", "data.covariates contains duplicate names"))
            elif not covariates:
                issues.append(("SUGGESTION", "No covariates configured. Exogenous models will fit on the response only."))

        freq = data.get('frequency')
        if freq is not None:
            try:
                to_offset(freq)
            except ValueError:
                issues.append(("ERROR", f"data.frequency '{freq}' is not a valid pandas frequency"))

        return issues

    def _validate_evaluation(self):
        issues = []
        evaluation = self.config.get('evaluation', {}) or {}

        cutoff = evaluation.get('cutoff_date')
        if cutoff is None:
            issues.append(("WARNING", "evaluation.cutoff_date not set. It must be passed to the pipeline explicitly."))
        else:
            try:
                pd.Timestamp(cutoff)
            except (ValueError, TypeError):
                issues.append(("ERROR", f"evaluation.cutoff_date '{cutoff}' is not a valid date"))

        workers = evaluation.get('max_workers', 1)
        if not isinstance(workers, int) or workers < 1:
            issues.append(("ERROR", f"evaluation.max_workers must be a positive integer, got {workers!r}"))

        return issues

    def _validate_engine(self):
        issues = []
        engine = self.config.get('engine', {}) or {}
        budget = engine.get('step_budget_seconds')
        if budget is not None and (not isinstance(budget, (int, float)) or budget <= 0):
            issues.append(("ERROR", f"engine.step_budget_seconds must be a positive number, got {budget!r}"))
        return issues

    def _validate_strategies(self):
        """
        Check every strategy maps onto a registered model, with known params and
        a valid refit policy.
        """
        issues = []
        if not isinstance(self.strategies, dict):
            issues.append(("ERROR", f"strategies must be a mapping, got {type(self.strategies)}"))
            return issues

        if not self.strategies:
            issues.append(("ERROR", "No strategies configured"))
            return issues

        enabled = 0
        for name, settings in self.strategies.items():
            settings = settings or {}
            model = settings.get('model', name)
            if model not in self.registry:
                issues.append(("ERROR", f"Strategy '{name}': unknown model '{model}'. "
                                        f"Valid options: {sorted(self.registry)}"))
                continue

            if settings.get('enabled', True):
                enabled += 1

            info = self.registry[model]
            for key in (settings.get('params') or {}):
                if key not in info['default_config']:
                    issues.append(("WARNING", f"Strategy '{name}': parameter '{key}' is not used by '{model}'"))

            params = settings.get('params') or {}
            for key in ('lags', 'window'):
                if key in params and (not isinstance(params[key], int) or params[key] < 1):
                    issues.append(("ERROR", f"Strategy '{name}': {key} must be an integer >= 1"))

            policy = settings.get('refit_policy')
            is_stepwise = issubclass(info['class'], StepwiseForecaster)
            if policy is not None:
                if policy not in VALID_REFIT_POLICIES:
                    issues.append(("ERROR", f"Strategy '{name}': invalid refit_policy '{policy}'. "
                                            f"Valid options: {VALID_REFIT_POLICIES}"))
                elif not is_stepwise:
                    issues.append(("WARNING", f"Strategy '{name}': refit_policy has no effect on "
                                              f"fixed-horizon model '{model}'"))

            if model == 'lstm' and policy == 'per_step':
                issues.append(("SUGGESTION", f"Strategy '{name}': per_step refit retrains the LSTM at every "
                                             f"step. Expect long runtimes; consider refit_policy 'once'."))

        if enabled == 0:
            issues.append(("ERROR", "Every strategy is disabled"))

        return issues

    def _validate_logging(self):
        issues = []
        level = (self.config.get('logging', {}) or {}).get('level', 'INFO')
        if str(level).upper() not in self.VALID_LOG_LEVELS:
            issues.append(("ERROR", f"logging.level '{level}' is invalid. Valid options: {sorted(self.VALID_LOG_LEVELS)}"))
        return issues


def load_config(config_path):
    """
    Load a YAML configuration file and validate it.

    Warnings and suggestions are logged; any ERROR raises ConfigError.
    """
    if not os.path.exists(config_path):
        raise ConfigError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}
    logger.info(f"Loaded configuration from {config_path}")

    issues = ConfigValidator(config_dict=config).validate()
    errors = []
    for level, msg in issues:
        if level == "ERROR":
            logger.error(f"CONFIG ERROR: {msg}")
            errors.append(msg)
        elif level == "WARNING":
            logger.warning(f"CONFIG WARNING: {msg}")
        else:
            logger.info(f"CONFIG SUGGESTION: {msg}")

    if errors:
        raise ConfigError(f"Configuration has {len(errors)} error(s)", {'errors': errors})

    logger.info("Configuration passed validation.")
    return config
