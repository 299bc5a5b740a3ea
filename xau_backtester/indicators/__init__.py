"""
Technical indicators over numeric and candle series.

Pure functions returning numpy arrays with NaN marking positions that do not
yet have enough data.
"""
