"""
Pytest configuration file.

Ensures the repo root is on sys.path so that 'import xau_backtester...' works,
silences loguru during tests and provides shared fixtures: a cost-free
backtest config, rising candles and a scripted strategy for optimizer tests.
"""
import sys
from pathlib import Path

import pytest
from loguru import logger

# Add the repo root to sys.path
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from xau_backtester.backtesting.models import BacktestConfig, Signal, SignalType  # noqa: E402
from xau_backtester.data.synthetic import generate_linear_candles  # noqa: E402
from xau_backtester.strategies.base import Strategy  # noqa: E402


@pytest.fixture(autouse=True)
def silence_logger():
    """Drop all log output; tests assert on behavior, not log lines."""
    logger.remove()
    logger.add(lambda message: None, level="DEBUG")
    yield
    logger.remove()


@pytest.fixture
def frictionless_config():
    """$10k account, no commission or slippage, 1x leverage, full equity per trade."""
    return BacktestConfig(
        initial_capital=10_000.0,
        commission=0.0,
        slippage=0.0,
        leverage=1.0,
        max_position_size=1.0,
    )


class HoldStrategy(Strategy):
    """
    Buys on the first candle and closes after `hold` candles.

    On a rising series the return grows with `hold`, which gives optimizer
    tests a metric surface with a known best point. `fail_on` names a hold
    value whose evaluation raises.
    """

    name = "Hold"
    default_params = {"hold": 1, "fail_on": None}

    def on_init(self):
        if self.params["fail_on"] is not None and self.int_param("hold") == self.params["fail_on"]:
            raise RuntimeError(f"hold={self.params['hold']} is not supported")

    def on_candle(self, index, history, position):
        if index == 0:
            return Signal(type=SignalType.BUY)
        if index == self.int_param("hold"):
            return Signal(type=SignalType.CLOSE)
        return None


@pytest.fixture
def hold_factory():
    """`params -> HoldStrategy`, as the optimizers expect."""
    return lambda params: HoldStrategy(params)


@pytest.fixture
def rising_candles():
    """40 one-minute candles rising linearly from 2000 to 2039."""
    return generate_linear_candles(n=40, start_price=2000.0, end_price=2039.0)
