"""
Execution simulation for backtests.

The paper broker owns the open position, the realized equity and the trade
ledger of a single backtest run.
"""
