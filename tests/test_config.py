import os

import pytest
import yaml

from commodity_forecast.config_validator import ConfigValidator, load_config
from commodity_forecast.errors import ConfigError


def _levels(issues, level):
    return [msg for lvl, msg in issues if lvl == level]


def test_valid_config(valid_config):
    """Ensure sample valid config passes with no critical errors."""
    issues = ConfigValidator(config_dict=valid_config).validate()
    errors = _levels(issues, "ERROR")
    assert len(errors) == 0, f"Found errors in valid config: {errors}"


def test_missing_strategies():
    issues = ConfigValidator(config_dict={}).validate()
    assert any("No strategies configured" in msg for msg in _levels(issues, "ERROR"))


def test_requires_source():
    with pytest.raises(ValueError):
        ConfigValidator()


def test_unknown_model(valid_config):
    valid_config['strategies']['prophet'] = {'model': 'prophet'}
    issues = ConfigValidator(config_dict=valid_config).validate()
    assert any("unknown model 'prophet'" in msg for msg in _levels(issues, "ERROR"))


def test_invalid_refit_policy(valid_config):
    valid_config['strategies']['lagged_regression']['refit_policy'] = 'weekly'
    issues = ConfigValidator(config_dict=valid_config).validate()
    assert any("invalid refit_policy" in msg for msg in _levels(issues, "ERROR"))


def test_refit_policy_on_fixed_model_warns(valid_config):
    valid_config['strategies']['naive']['refit_policy'] = 'per_step'
    issues = ConfigValidator(config_dict=valid_config).validate()
    assert any("has no effect" in msg for msg in _levels(issues, "WARNING"))


def test_zero_lags(valid_config):
    valid_config['strategies']['lagged_regression']['params']['lags'] = 0
    issues = ConfigValidator(config_dict=valid_config).validate()
    assert any("lags must be an integer >= 1" in msg for msg in _levels(issues, "ERROR"))


def test_dead_param_warns(valid_config):
    valid_config['strategies']['naive']['params'] = {'window': 3}
    issues = ConfigValidator(config_dict=valid_config).validate()
    assert any("'window' is not used" in msg for msg in _levels(issues, "WARNING"))


def test_lstm_per_step_suggestion(valid_config):
    valid_config['strategies']['lstm'] = {'model': 'lstm', 'refit_policy': 'per_step'}
    issues = ConfigValidator(config_dict=valid_config).validate()
    assert _levels(issues, "SUGGESTION")


def test_all_disabled(valid_config):
    for settings in valid_config['strategies'].values():
        settings['enabled'] = False
    issues = ConfigValidator(config_dict=valid_config).validate()
    assert any("disabled" in msg for msg in _levels(issues, "ERROR"))


@pytest.mark.parametrize("section,key,value", [
    ('evaluation', 'cutoff_date', 'not-a-date'),
    ('evaluation', 'max_workers', 0),
    ('engine', 'step_budget_seconds', -1),
    ('data', 'frequency', 'fortnightly'),
    ('data', 'covariates', ['rainfall', 'rainfall']),
    ('logging', 'level', 'LOUD'),
])
def test_invalid_values(valid_config, section, key, value):
    valid_config[section][key] = value
    issues = ConfigValidator(config_dict=valid_config).validate()
    assert _levels(issues, "ERROR")


def test_unknown_section_warns(valid_config):
    valid_config['reporting'] = {}
    issues = ConfigValidator(config_dict=valid_config).validate()
    assert any("Unknown config section 'reporting'" in msg for msg in _levels(issues, "WARNING"))


def test_load_config_roundtrip(tmp_path, valid_config):
    path = tmp_path / "configuration.yml"
    path.write_text(yaml.safe_dump(valid_config))
    assert load_config(str(path))['evaluation']['cutoff_date'] == valid_config['evaluation']['cutoff_date']


def test_load_config_rejects_errors(tmp_path, valid_config):
    valid_config['strategies'] = {}
    path = tmp_path / "configuration.yml"
    path.write_text(yaml.safe_dump(valid_config))
    with pytest.raises(ConfigError) as exc:
        load_config(str(path))
    assert exc.value.details['errors']


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "nope.yml"))


def test_shipped_configuration_is_valid():
    path = os.path.join(os.path.dirname(__file__), '..', 'configuration.yml')
    config = load_config(path)
    assert 'strategies' in config
