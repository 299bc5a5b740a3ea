"""
Cooperative cancellation for long-running optimization and simulation loops.

Grid search, genetic search, walk-forward analysis and Monte Carlo simulation
are synchronous CPU-bound loops. A `CancellationToken` lets the caller stop one
of them between evaluations: the loop checks the token before each unit of
work and raises `OptimizationCancelled` once it is set. The search algorithms
themselves are unaware of the token beyond that check.
"""

import threading
from typing import Optional


class OptimizationCancelled(Exception):
    """Raised by a search or simulation loop when its cancellation token is set."""


class CancellationToken:
    """
    Thread-safe, one-way cancellation flag.

    **Usage**:
        token = CancellationToken()
        optimizer = GridSearchOptimizer(..., cancel_token=token)
        # from a UI thread or a progress callback:
        token.cancel()

    Once cancelled, a token stays cancelled; create a new one per run.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """True once `cancel()` has been called."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """
        Raise `OptimizationCancelled` if cancellation was requested.

        Raises:
            OptimizationCancelled: If the token has been cancelled.
        """
        if self._event.is_set():
            raise OptimizationCancelled("Operation cancelled by caller.")


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """Raise `OptimizationCancelled` if `token` is set; no-op for None."""
    if token is not None:
        token.raise_if_cancelled()
