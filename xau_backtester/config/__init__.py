"""
Configuration objects loaded from environment variables.

Provides backtest defaults, logging settings and the global settings singleton.
"""
