"""
Parameter search and out-of-sample validation.

Grid search, genetic search and walk-forward analysis over strategy
parameter ranges, each driving many independent backtest runs.
"""
