"""
Configuration settings for the backtesting system.

**Conceptual**: This module provides strongly-typed configuration objects that
load from environment variables (via .env files). All settings are validated
at construction, so a bad value fails at startup with a message naming the
offending variable instead of surfacing mid-run as a strange backtest result.

**Environment variables** (all optional):
  - XAU_INITIAL_CAPITAL, XAU_COMMISSION, XAU_SLIPPAGE_PIPS, XAU_LEVERAGE,
    XAU_MAX_POSITION_SIZE, XAU_PIP_SIZE: backtest defaults.
  - XAU_LOG_LEVEL, XAU_LOG_DIR, XAU_LOG_ROTATION, XAU_LOG_RETENTION,
    XAU_LOG_TO_FILE: logging sinks.
  - XAU_RANDOM_SEED: seed for genetic search and Monte Carlo runs.

This module uses python-dotenv to load .env files and dataclasses for type safety.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from xau_backtester.backtesting.models import BacktestConfig, DEFAULT_BACKTEST_CONFIG


# Load .env from project root (no-op if the file does not exist)
load_dotenv(dotenv_path=Path(__file__).parent.parent.parent / ".env")


_TRUE_VALUES = ("true", "1", "yes")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw}")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw}")


@dataclass(frozen=True)
class BacktestSettings:
    """
    Default execution assumptions for backtests.

    **Conceptual**: These are the account and cost assumptions every backtest
    runs under unless the caller passes an explicit `BacktestConfig`. The
    defaults model a retail XAU/USD CFD account: $10k capital, 0.01%
    commission, 0.1 pip slippage, 100x leverage and 10% of equity per trade.

    Attributes:
        initial_capital: Starting account equity (must be positive).
        commission: Commission as a fraction of notional, charged on entry and
                    on exit (0.0001 = 0.01%).
        slippage_pips: Adverse fill offset in pips applied to entries and exits.
        leverage: Notional multiplier applied to position sizing (>= 1).
        max_position_size: Fraction of equity committed per position before
                           leverage (0 < value <= 1).
        pip_size: Price value of one pip (0.01 for XAU/USD).
    """
    initial_capital: float = DEFAULT_BACKTEST_CONFIG.initial_capital
    commission: float = DEFAULT_BACKTEST_CONFIG.commission
    slippage_pips: float = DEFAULT_BACKTEST_CONFIG.slippage
    leverage: float = DEFAULT_BACKTEST_CONFIG.leverage
    max_position_size: float = DEFAULT_BACKTEST_CONFIG.max_position_size
    pip_size: float = DEFAULT_BACKTEST_CONFIG.pip_size

    def __post_init__(self):
        """Validate settings after initialization."""
        if self.initial_capital <= 0:
            raise ValueError(
                f"XAU_INITIAL_CAPITAL must be positive, got: {self.initial_capital}"
            )
        if self.commission < 0:
            raise ValueError(f"XAU_COMMISSION must be non-negative, got: {self.commission}")
        if self.slippage_pips < 0:
            raise ValueError(
                f"XAU_SLIPPAGE_PIPS must be non-negative, got: {self.slippage_pips}"
            )
        if self.leverage < 1:
            raise ValueError(f"XAU_LEVERAGE must be >= 1, got: {self.leverage}")
        if not 0 < self.max_position_size <= 1:
            raise ValueError(
                f"XAU_MAX_POSITION_SIZE must be in (0, 1], got: {self.max_position_size}"
            )
        if self.pip_size <= 0:
            raise ValueError(f"XAU_PIP_SIZE must be positive, got: {self.pip_size}")

    @classmethod
    def from_env(cls) -> "BacktestSettings":
        """
        Load backtest settings from environment variables.

        Returns:
            BacktestSettings with unset variables falling back to defaults.

        Raises:
            ValueError: If a variable is set but not numeric, or out of range.
        """
        return cls(
            initial_capital=_env_float("XAU_INITIAL_CAPITAL", cls.initial_capital),
            commission=_env_float("XAU_COMMISSION", cls.commission),
            slippage_pips=_env_float("XAU_SLIPPAGE_PIPS", cls.slippage_pips),
            leverage=_env_float("XAU_LEVERAGE", cls.leverage),
            max_position_size=_env_float("XAU_MAX_POSITION_SIZE", cls.max_position_size),
            pip_size=_env_float("XAU_PIP_SIZE", cls.pip_size),
        )

    def to_backtest_config(self) -> BacktestConfig:
        """Build the engine-facing `BacktestConfig` from these settings."""
        return BacktestConfig(
            initial_capital=self.initial_capital,
            commission=self.commission,
            slippage=self.slippage_pips,
            leverage=self.leverage,
            max_position_size=self.max_position_size,
            pip_size=self.pip_size,
        )


@dataclass(frozen=True)
class LoggingSettings:
    """
    Configuration for loguru sinks.

    Attributes:
        level: Minimum level for emitted records ("DEBUG", "INFO", ...).
        log_dir: Directory for the rotating file sink.
        rotation: loguru rotation policy for the file sink (e.g. "1 day").
        retention: loguru retention policy for rotated files (e.g. "30 days").
        to_file: If True, also write to `log_dir`; stderr is always a sink.
    """
    level: str = "INFO"
    log_dir: str = "logs"
    rotation: str = "1 day"
    retention: str = "30 days"
    to_file: bool = False

    def __post_init__(self):
        """Validate settings after initialization."""
        valid_levels = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")
        if self.level.upper() not in valid_levels:
            raise ValueError(
                f"XAU_LOG_LEVEL must be one of {valid_levels}, got: {self.level}"
            )

    @classmethod
    def from_env(cls) -> "LoggingSettings":
        """Load logging settings from environment variables."""
        return cls(
            level=os.getenv("XAU_LOG_LEVEL", "INFO").upper(),
            log_dir=os.getenv("XAU_LOG_DIR", "logs"),
            rotation=os.getenv("XAU_LOG_ROTATION", "1 day"),
            retention=os.getenv("XAU_LOG_RETENTION", "30 days"),
            to_file=os.getenv("XAU_LOG_TO_FILE", "false").lower() in _TRUE_VALUES,
        )


@dataclass(frozen=True)
class Settings:
    """
    Global settings for the backtesting system.

    **Usage pattern**:
      ```python
      from xau_backtester.config.settings import get_settings

      settings = get_settings()
      config = settings.backtest.to_backtest_config()
      ```

    Attributes:
        backtest: Default execution assumptions.
        logging: Logging sink configuration.
        random_seed: Seed for genetic search and Monte Carlo runs.
                     None means fresh OS entropy on every run.
    """
    backtest: BacktestSettings = field(default_factory=BacktestSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    random_seed: Optional[int] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Load global settings from environment variables.

        Raises:
            ValueError: If any subsystem variable is malformed.
        """
        return cls(
            backtest=BacktestSettings.from_env(),
            logging=LoggingSettings.from_env(),
            random_seed=_env_int("XAU_RANDOM_SEED", None),
        )


_default_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings singleton.

    Settings are loaded from the environment on first call, then cached.
    Tests can bypass this by constructing their own `Settings` objects, or
    call `reset_settings()` after changing environment variables.

    Returns:
        Global Settings singleton.
    """
    global _default_settings

    if _default_settings is None:
        _default_settings = Settings.from_env()

    return _default_settings


def reset_settings():
    """
    Reset the global settings singleton (for testing).

    Returns:
        None (side effect: clears global settings cache).
    """
    global _default_settings
    _default_settings = None
