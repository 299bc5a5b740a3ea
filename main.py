"""
xau_backtester – Main entry point.

Minimal bootstrap script: configures logging from settings and runs a short
buy-and-hold backtest on synthetic candles to verify the install.
"""

from xau_backtester.backtesting.engine import run_backtest
from xau_backtester.config.settings import get_settings
from xau_backtester.data.synthetic import generate_linear_candles
from xau_backtester.strategies.base import BuyAndHoldStrategy
from xau_backtester.utils.logging import configure_logging


def main() -> None:
    """Run a smoke backtest and print a bootstrap confirmation message."""
    settings = get_settings()
    configure_logging(settings.logging)

    candles = generate_linear_candles(n=100)
    result = run_backtest(candles, BuyAndHoldStrategy(), settings.backtest.to_backtest_config())
    print(
        f"xau_backtester bootstrap complete: {len(result.trades)} trade, "
        f"final equity {result.final_equity:.2f}"
    )


if __name__ == "__main__":
    main()
