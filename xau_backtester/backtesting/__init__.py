"""
Backtest engine and the data model it produces.

Replays candles through a strategy and a paper broker to produce trades,
an equity curve and performance metrics.
"""
