"""
Closed registry of strategy variants.

The engine and optimizers only see the `Strategy` interface; this module is
the single place that maps a strategy kind to its class. Optimizers take a
factory `params -> Strategy`, which `strategy_factory(kind)` provides.
"""

from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Type

from xau_backtester.strategies.base import BuyAndHoldStrategy, NeverSignalStrategy, Strategy
from xau_backtester.strategies.breakout import BreakoutStrategy
from xau_backtester.strategies.rsi_reversal import RSIReversalStrategy
from xau_backtester.strategies.sma_crossover import SMACrossoverStrategy


StrategyFactory = Callable[[Mapping[str, Any]], Strategy]


class StrategyKind(str, Enum):
    SMA_CROSSOVER = "sma_crossover"
    RSI_REVERSAL = "rsi_reversal"
    BREAKOUT = "breakout"
    NEVER_SIGNAL = "never_signal"
    BUY_AND_HOLD = "buy_and_hold"


STRATEGY_REGISTRY: Dict[StrategyKind, Type[Strategy]] = {
    StrategyKind.SMA_CROSSOVER: SMACrossoverStrategy,
    StrategyKind.RSI_REVERSAL: RSIReversalStrategy,
    StrategyKind.BREAKOUT: BreakoutStrategy,
    StrategyKind.NEVER_SIGNAL: NeverSignalStrategy,
    StrategyKind.BUY_AND_HOLD: BuyAndHoldStrategy,
}


def _resolve(kind) -> StrategyKind:
    try:
        return StrategyKind(kind)
    except ValueError:
        valid = ", ".join(k.value for k in StrategyKind)
        raise ValueError(f"Unknown strategy kind '{kind}'. Expected one of: {valid}")


def create_strategy(kind, params: Optional[Mapping[str, Any]] = None) -> Strategy:
    """
    Build a strategy instance by kind.

    Args:
        kind: StrategyKind or its string value (e.g. "sma_crossover").
        params: Overrides merged over the strategy's defaults.

    Raises:
        ValueError: If `kind` is not registered.
    """
    return STRATEGY_REGISTRY[_resolve(kind)](params)


def strategy_factory(kind) -> StrategyFactory:
    """Return a `params -> Strategy` factory for the optimizers."""
    strategy_cls = STRATEGY_REGISTRY[_resolve(kind)]

    def factory(params: Mapping[str, Any]) -> Strategy:
        return strategy_cls(params)

    return factory
