"""
Strategy interface and the registered strategy implementations.

Defines the abstract strategy contract consumed by the backtest engine and
the closed set of concrete strategies that emit trading signals.
"""
