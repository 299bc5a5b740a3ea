"""
Generic utility functions shared across modules.

Includes timestamp helpers, mathematical helpers, logging setup and
cooperative cancellation for long-running loops.
"""
