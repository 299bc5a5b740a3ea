"""
Tests for xau_backtester/config/settings.py

Environment variables are set with monkeypatch and the settings singleton is
reset around each test so nothing leaks between tests.
"""

import pytest

from xau_backtester.backtesting.models import DEFAULT_BACKTEST_CONFIG
from xau_backtester.config.settings import (
    BacktestSettings,
    LoggingSettings,
    Settings,
    get_settings,
    reset_settings,
)


ENV_VARS = (
    "XAU_INITIAL_CAPITAL", "XAU_COMMISSION", "XAU_SLIPPAGE_PIPS", "XAU_LEVERAGE",
    "XAU_MAX_POSITION_SIZE", "XAU_PIP_SIZE", "XAU_LOG_LEVEL", "XAU_LOG_DIR",
    "XAU_LOG_ROTATION", "XAU_LOG_RETENTION", "XAU_LOG_TO_FILE", "XAU_RANDOM_SEED",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


def test_defaults_match_default_backtest_config():
    """Without environment overrides, settings reproduce DEFAULT_BACKTEST_CONFIG."""
    config = BacktestSettings.from_env().to_backtest_config()
    assert config == DEFAULT_BACKTEST_CONFIG


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("XAU_INITIAL_CAPITAL", "25000")
    monkeypatch.setenv("XAU_LEVERAGE", "50")
    monkeypatch.setenv("XAU_RANDOM_SEED", "123")
    monkeypatch.setenv("XAU_LOG_LEVEL", "debug")
    monkeypatch.setenv("XAU_LOG_TO_FILE", "yes")

    settings = Settings.from_env()

    assert settings.backtest.initial_capital == 25_000.0
    assert settings.backtest.leverage == 50.0
    assert settings.random_seed == 123
    assert settings.logging.level == "DEBUG"
    assert settings.logging.to_file is True


def test_non_numeric_value_names_the_variable(monkeypatch):
    monkeypatch.setenv("XAU_COMMISSION", "cheap")
    with pytest.raises(ValueError, match="XAU_COMMISSION"):
        BacktestSettings.from_env()


def test_out_of_range_values_rejected():
    with pytest.raises(ValueError, match="XAU_INITIAL_CAPITAL"):
        BacktestSettings(initial_capital=0)
    with pytest.raises(ValueError, match="XAU_MAX_POSITION_SIZE"):
        BacktestSettings(max_position_size=1.5)
    with pytest.raises(ValueError, match="XAU_LOG_LEVEL"):
        LoggingSettings(level="LOUD")


def test_get_settings_is_cached_until_reset(monkeypatch):
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("XAU_INITIAL_CAPITAL", "5000")
    assert get_settings().backtest.initial_capital == first.backtest.initial_capital

    reset_settings()
    assert get_settings().backtest.initial_capital == 5000.0
