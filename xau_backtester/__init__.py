"""
xau_backtester – historical bar replay, strategy evaluation and parameter search.

Replays candle data through pluggable strategies, tracks the resulting
position/trade lifecycle, derives performance statistics, and searches
strategy-parameter space with grid search, genetic search, walk-forward
analysis and Monte Carlo risk analysis.
"""

__version__ = "0.1.0"
