"""
Monte Carlo permutation analysis of a realized trade sequence.

**Conceptual**: A backtest produces one ordering of trades, and its drawdown
depends heavily on that ordering: the same ten trades can produce a gentle
equity curve or a brutal one depending on whether the losers cluster. This
module reshuffles the realized trades many times and replays each ordering
against the initial capital, giving a distribution of outcomes instead of a
single path.

**Mathematical**:
  - Each simulation is a uniform random permutation of the trade P&Ls
    (Fisher-Yates), not resampling with replacement. The sum of P&L, and
    therefore the final equity and total return, is identical in every
    simulation; path-dependent statistics (drawdown, Sharpe, ruin) vary.
  - equity_k = initial + Σ_{j<=k} pnl_j; peak_k = max(initial, equity_0..k)
  - drawdown_k = (peak_k - equity_k) / peak_k; ruin when drawdown_k >= threshold
  - Sharpe (per-trade) = mean(r) / std(r, ddof=1) * sqrt(252), with std = 1
    when there are fewer than two returns.
  - Percentiles use the nearest-rank index min(floor(S * p), S - 1).

**Percentile bands**: Each band describes one quality of outcome. For
return, final equity and Sharpe, p5 is the pessimistic tail. For drawdown,
larger is worse, so the p5 band reports the 95th drawdown percentile and the
p95 band the 5th.

**Teaching note**: Risk of ruin here is the share of orderings whose
drawdown ever reached the threshold. It says nothing about trades you have
not seen; it only measures how fragile the realized edge is to sequencing.
"""

from dataclasses import dataclass, field
from time import perf_counter
from typing import Callable, List, Optional, Sequence

import numpy as np
from loguru import logger

from xau_backtester.analytics.performance import PerformanceMetrics
from xau_backtester.backtesting.models import Trade
from xau_backtester.utils.cancellation import CancellationToken, check_cancelled
from xau_backtester.utils.math import nearest_rank_percentile, sample_std


MAX_SIMULATIONS = 10_000
PROGRESS_EVERY = 100
TRADES_PER_YEAR = 252

MonteCarloProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class MonteCarloConfig:
    """
    Attributes:
        simulations: Number of permutations S, 1..10,000.
        initial_capital: Starting equity for every replay (> 0).
        ruin_threshold: Drawdown fraction counted as ruin (0.5 = 50%), in (0, 1].
    """
    simulations: int = 1000
    initial_capital: float = 10_000.0
    ruin_threshold: float = 0.5

    def __post_init__(self):
        if not 1 <= self.simulations <= MAX_SIMULATIONS:
            raise ValueError(
                f"simulations must be in [1, {MAX_SIMULATIONS}], got {self.simulations}"
            )
        if self.initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {self.initial_capital}")
        if not 0.0 < self.ruin_threshold <= 1.0:
            raise ValueError(f"ruin_threshold must be in (0, 1], got {self.ruin_threshold}")


DEFAULT_MONTE_CARLO_CONFIG = MonteCarloConfig()


@dataclass(frozen=True)
class MonteCarloPercentile:
    total_return: float = 0.0
    max_drawdown: float = 0.0
    final_equity: float = 0.0
    sharpe_ratio: float = 0.0


@dataclass(frozen=True)
class ConfidenceInterval95:
    return_low: float = 0.0
    return_high: float = 0.0
    drawdown_low: float = 0.0
    drawdown_high: float = 0.0


@dataclass(frozen=True)
class SimulationOutcome:
    """Result of replaying one trade ordering."""
    total_return: float
    max_drawdown: float
    final_equity: float
    sharpe_ratio: float
    hit_ruin: bool


@dataclass
class MonteCarloResult:
    """
    Attributes:
        simulations: Number of simulations run (0 when there were no trades).
        p5, p25, p50, p75, p95: Percentile bands (drawdown inverted, see module doc).
        risk_of_ruin: Share of simulations that hit the ruin threshold (%).
        confidence_interval_95: 2.5th / 97.5th percentiles of return and drawdown.
        original_metrics: Metrics of the backtest the trades came from.
        processing_time: Wall-clock seconds.
    """
    simulations: int
    p5: MonteCarloPercentile
    p25: MonteCarloPercentile
    p50: MonteCarloPercentile
    p75: MonteCarloPercentile
    p95: MonteCarloPercentile
    risk_of_ruin: float
    confidence_interval_95: ConfidenceInterval95
    original_metrics: Optional[PerformanceMetrics]
    processing_time: float
    outcomes: List[SimulationOutcome] = field(default_factory=list, repr=False)

    @property
    def percentiles(self) -> dict:
        return {"p5": self.p5, "p25": self.p25, "p50": self.p50, "p75": self.p75, "p95": self.p95}


def replay_trades(pnls: Sequence[float], initial_capital: float, ruin_threshold: float) -> SimulationOutcome:
    """
    Replay one ordering of trade P&Ls against `initial_capital`.

    Returns with prev equity <= 0 are skipped; drawdown is measured from a
    peak that starts at initial capital.
    """
    equity = initial_capital
    peak = initial_capital
    max_drawdown = 0.0
    hit_ruin = False
    returns = []

    for pnl in pnls:
        previous = equity
        equity += pnl
        if previous > 0:
            returns.append((equity - previous) / previous)

        peak = max(peak, equity)
        drawdown = (peak - equity) / peak
        max_drawdown = max(max_drawdown, drawdown)
        if drawdown >= ruin_threshold:
            hit_ruin = True

    mean_return = float(np.mean(returns)) if returns else 0.0
    std = sample_std(returns) if len(returns) > 1 else 1.0
    sharpe = mean_return / std * np.sqrt(TRADES_PER_YEAR) if std > 0 else 0.0

    return SimulationOutcome(
        total_return=(equity - initial_capital) / initial_capital * 100.0,
        max_drawdown=max_drawdown * 100.0,
        final_equity=equity,
        sharpe_ratio=float(sharpe),
        hit_ruin=hit_ruin,
    )


class MonteCarloSimulator:
    """
    Permutation simulator over a fixed trade list.

    Example:
        result = run_backtest(candles, strategy, config)
        mc = MonteCarloSimulator(result.trades, result.metrics,
                                 MonteCarloConfig(simulations=2000), seed=42)
        print(mc.simulate().risk_of_ruin)
    """

    def __init__(
        self,
        trades: Sequence[Trade],
        original_metrics: Optional[PerformanceMetrics] = None,
        config: MonteCarloConfig = DEFAULT_MONTE_CARLO_CONFIG,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.trades = list(trades)
        self.original_metrics = original_metrics
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.cancel_token = cancel_token

    def _empty_result(self) -> MonteCarloResult:
        band = MonteCarloPercentile(final_equity=self.config.initial_capital)
        return MonteCarloResult(
            simulations=0,
            p5=band, p25=band, p50=band, p75=band, p95=band,
            risk_of_ruin=0.0,
            confidence_interval_95=ConfidenceInterval95(),
            original_metrics=self.original_metrics,
            processing_time=0.0,
        )

    def simulate(self, on_progress: Optional[MonteCarloProgressCallback] = None) -> MonteCarloResult:
        """
        Run `config.simulations` permutations.

        Args:
            on_progress: Called with the completed fraction after simulation 1,
                         every 100 simulations thereafter, and at the end.

        Returns:
            MonteCarloResult (an empty result with simulations=0 when there
            are no trades).

        Raises:
            OptimizationCancelled: If the cancel token is set between simulations.
        """
        if not self.trades:
            logger.warning("Monte Carlo skipped: no closed trades to permute")
            return self._empty_result()

        cfg = self.config
        start = perf_counter()
        pnls = np.array([t.pnl for t in self.trades], dtype=float)

        outcomes: List[SimulationOutcome] = []
        ruin_count = 0
        for sim in range(cfg.simulations):
            check_cancelled(self.cancel_token)
            outcome = replay_trades(self.rng.permutation(pnls), cfg.initial_capital, cfg.ruin_threshold)
            outcomes.append(outcome)
            ruin_count += outcome.hit_ruin

            if on_progress is not None and sim % PROGRESS_EVERY == 0:
                on_progress((sim + 1) / cfg.simulations)

        if on_progress is not None:
            on_progress(1.0)

        returns = sorted(o.total_return for o in outcomes)
        drawdowns = sorted(o.max_drawdown for o in outcomes)
        equities = sorted(o.final_equity for o in outcomes)
        sharpes = sorted(o.sharpe_ratio for o in outcomes)

        def band(p: float, drawdown_p: float) -> MonteCarloPercentile:
            return MonteCarloPercentile(
                total_return=nearest_rank_percentile(returns, p),
                max_drawdown=nearest_rank_percentile(drawdowns, drawdown_p),
                final_equity=nearest_rank_percentile(equities, p),
                sharpe_ratio=nearest_rank_percentile(sharpes, p),
            )

        risk_of_ruin = ruin_count / cfg.simulations * 100.0
        elapsed = perf_counter() - start
        logger.info(
            "Monte Carlo: {} simulations of {} trades in {:.2f}s, risk of ruin {:.2f}%",
            cfg.simulations, len(pnls), elapsed, risk_of_ruin,
        )

        return MonteCarloResult(
            simulations=cfg.simulations,
            p5=band(0.05, 0.95),
            p25=band(0.25, 0.75),
            p50=band(0.50, 0.50),
            p75=band(0.75, 0.25),
            p95=band(0.95, 0.05),
            risk_of_ruin=risk_of_ruin,
            confidence_interval_95=ConfidenceInterval95(
                return_low=nearest_rank_percentile(returns, 0.025),
                return_high=nearest_rank_percentile(returns, 0.975),
                drawdown_low=nearest_rank_percentile(drawdowns, 0.025),
                drawdown_high=nearest_rank_percentile(drawdowns, 0.975),
            ),
            original_metrics=self.original_metrics,
            processing_time=elapsed,
            outcomes=outcomes,
        )
