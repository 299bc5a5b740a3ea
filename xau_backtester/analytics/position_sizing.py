"""
Position sizing calculators.

**Conceptual**: A backtest answers "does this strategy have an edge?"; position
sizing answers "how much capital should each trade risk given that edge?".
Every calculator here takes the same summary of a trade history (win rate,
average win, average loss) and returns a recommended position size as a
percentage of capital.

**Methods**:
  - Kelly criterion: f* = (b·p - q) / b with b = avg_win / avg_loss,
    p = win rate, q = 1 - p. Clamped to [0, max_risk].
  - Half-Kelly: Kelly / 2.
  - Fixed fractional: risk a fixed share of the account per trade,
    size = account · risk / avg_loss, capped at 100% of capital.
  - Optimal-f (simplified): f = W - (1 - W) / R with R = avg_win / avg_loss,
    clamped to [0, max_risk].
  - Fixed ratio: contracts = floor(sqrt(2 · account / delta + 0.25) + 0.5),
    at least `starting_contracts`.

**Teaching note**: Full Kelly maximizes long-run growth only when the inputs
are exact. Win rate and payoff are estimated from a finite sample, and
over-betting is far more costly than under-betting, which is why half-Kelly
is the usual practical choice.
"""

from dataclasses import dataclass
from typing import List

from xau_backtester.analytics.performance import PerformanceMetrics


DEFAULT_MAX_RISK = 0.25
DEFAULT_FIXED_RATIO_DELTA = 5000.0


@dataclass(frozen=True)
class PositionSizeInputs:
    """
    Attributes:
        account_size: Capital available ($).
        win_rate: Probability of a winning trade, in [0, 1].
        avg_win: Mean winning trade ($, positive).
        avg_loss: Mean losing trade magnitude ($, positive).
        max_risk: Upper clamp for Kelly and optimal-f fractions (0.25 = 25%).
    """
    account_size: float
    win_rate: float
    avg_win: float
    avg_loss: float
    max_risk: float = DEFAULT_MAX_RISK

    def __post_init__(self):
        if not 0.0 <= self.win_rate <= 1.0:
            raise ValueError(f"win_rate must be in [0, 1], got {self.win_rate}")
        if self.avg_win < 0 or self.avg_loss < 0:
            raise ValueError("avg_win and avg_loss must be non-negative magnitudes")

    @property
    def expected_value(self) -> float:
        """p · avg_win - q · avg_loss, in $ per trade."""
        return self.win_rate * self.avg_win - (1.0 - self.win_rate) * self.avg_loss


@dataclass(frozen=True)
class PositionSizeResult:
    """
    Attributes:
        method: Human-readable method name.
        position_size: Recommended size as % of capital.
        risk_per_trade: Capital at risk per trade (%).
        expected_value: Expected P&L per trade ($).
        notes: Short interpretation of the recommendation.
    """
    method: str
    position_size: float
    risk_per_trade: float
    expected_value: float
    notes: str


def _clamp_fraction(value: float, max_risk: float) -> float:
    return max(0.0, min(value, max_risk))


def kelly_position_size(inputs: PositionSizeInputs) -> PositionSizeResult:
    """
    Kelly criterion sizing.

    **Edge cases**:
      - avg_loss == 0: size 0 with a note; the payoff ratio is undefined.
      - Negative edge: clamped to 0 ("no position recommended").
    """
    if inputs.avg_loss == 0:
        return PositionSizeResult(
            method="Kelly Criterion",
            position_size=0.0,
            risk_per_trade=0.0,
            expected_value=0.0,
            notes="Cannot calculate: average loss is zero",
        )

    b = inputs.avg_win / inputs.avg_loss
    p = inputs.win_rate
    q = 1.0 - p
    kelly = (b * p - q) / b if b > 0 else -q
    kelly = _clamp_fraction(kelly, inputs.max_risk)

    if kelly == 0:
        notes = "Negative edge - no position recommended"
    elif kelly > 0.2:
        notes = "High Kelly value - consider using half-Kelly for safety"
    else:
        notes = "Optimal growth position size"

    return PositionSizeResult(
        method="Kelly Criterion",
        position_size=kelly * 100.0,
        risk_per_trade=kelly * 100.0,
        expected_value=inputs.expected_value,
        notes=notes,
    )


def half_kelly_position_size(inputs: PositionSizeInputs) -> PositionSizeResult:
    full = kelly_position_size(inputs)
    return PositionSizeResult(
        method="Half-Kelly",
        position_size=full.position_size / 2.0,
        risk_per_trade=full.risk_per_trade / 2.0,
        expected_value=full.expected_value,
        notes="Conservative approach - half of Kelly for reduced volatility",
    )


def fixed_fractional_position_size(inputs: PositionSizeInputs, risk_percent: float = 0.02) -> PositionSizeResult:
    """
    Risk a fixed fraction of the account per trade.

    Args:
        inputs: Trade-history summary.
        risk_percent: Fraction of the account to risk (0.02 = 2%).

    Returns:
        Size = (account · risk / avg_loss) / account · 100, capped at 100%.
    """
    if inputs.avg_loss == 0:
        return PositionSizeResult(
            method="Fixed Fractional",
            position_size=0.0,
            risk_per_trade=risk_percent * 100.0,
            expected_value=0.0,
            notes="Cannot calculate: average loss is zero",
        )

    risk_amount = inputs.account_size * risk_percent
    size = risk_amount / inputs.avg_loss
    size_percent = size / inputs.account_size * 100.0 if inputs.account_size > 0 else 0.0

    return PositionSizeResult(
        method="Fixed Fractional",
        position_size=min(size_percent, 100.0),
        risk_per_trade=risk_percent * 100.0,
        expected_value=inputs.expected_value,
        notes=f"Risking {risk_percent * 100:.1f}% per trade",
    )


def optimal_f_position_size(inputs: PositionSizeInputs) -> PositionSizeResult:
    """Simplified optimal-f: W - (1 - W) / R, clamped to [0, max_risk]."""
    ratio = inputs.avg_win / inputs.avg_loss if inputs.avg_loss > 0 else 0.0
    if ratio > 0:
        optimal_f = inputs.win_rate - (1.0 - inputs.win_rate) / ratio
    else:
        optimal_f = 0.0
    optimal_f = _clamp_fraction(optimal_f, inputs.max_risk)

    return PositionSizeResult(
        method="Optimal-f",
        position_size=optimal_f * 100.0,
        risk_per_trade=optimal_f * 100.0,
        expected_value=inputs.expected_value,
        notes=(
            "Based on historical trade distribution"
            if optimal_f > 0
            else "Edge too small for optimal-f recommendation"
        ),
    )


def fixed_ratio_position_size(
    account_size: float,
    delta: float = DEFAULT_FIXED_RATIO_DELTA,
    starting_contracts: int = 1,
) -> PositionSizeResult:
    """
    Ryan Jones' fixed ratio: contracts grow with account size in steps of `delta`.

    Raises:
        ValueError: If account_size or delta is not positive.
    """
    if account_size <= 0:
        raise ValueError(f"account_size must be positive, got {account_size}")
    if delta <= 0:
        raise ValueError(f"delta must be positive, got {delta}")

    contracts = int((2.0 * account_size / delta + 0.25) ** 0.5 + 0.5)
    contracts = max(starting_contracts, contracts)
    size_percent = contracts * delta / account_size * 100.0

    return PositionSizeResult(
        method="Fixed Ratio",
        position_size=min(size_percent, 100.0),
        risk_per_trade=size_percent,
        expected_value=0.0,
        notes=f"{contracts} contracts at delta ${delta:,.0f}",
    )


def calculate_all_position_sizes(inputs: PositionSizeInputs) -> List[PositionSizeResult]:
    """Kelly, half-Kelly, fixed fractional at 1% and 2%, optimal-f and fixed ratio."""
    return [
        kelly_position_size(inputs),
        half_kelly_position_size(inputs),
        fixed_fractional_position_size(inputs, 0.01),
        fixed_fractional_position_size(inputs, 0.02),
        optimal_f_position_size(inputs),
        fixed_ratio_position_size(inputs.account_size, DEFAULT_FIXED_RATIO_DELTA),
    ]


def anti_martingale_size(
    base_size: float,
    consecutive_wins: int,
    multiplier: float = 1.5,
    max_multiplier: float = 3.0,
) -> float:
    """base_size · multiplier^wins, capped at base_size · max_multiplier."""
    growth = multiplier ** consecutive_wins
    return min(base_size * growth, base_size * max_multiplier)


def position_size_inputs_from_metrics(
    metrics: PerformanceMetrics,
    account_size: float,
    max_risk: float = DEFAULT_MAX_RISK,
) -> PositionSizeInputs:
    """Build sizing inputs from a backtest's metrics (win rate converted from %)."""
    return PositionSizeInputs(
        account_size=account_size,
        win_rate=metrics.win_rate / 100.0,
        avg_win=metrics.average_win,
        avg_loss=metrics.average_loss,
        max_risk=max_risk,
    )
