"""
Candle data contracts, conversions, timeframe aggregation and synthetic data.

Everything that turns raw bars into validated `Candle` lists (and back into
pandas objects for analysis) lives here.
"""
