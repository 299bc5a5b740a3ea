"""
Performance metrics, risk metrics, position sizing and Monte Carlo analysis.

Aggregates trade lists and equity curves into summary statistics and
bootstrap risk estimates.
"""
