"""
Tests for xau_backtester/utils/cancellation.py
"""

import pytest

from xau_backtester.utils.cancellation import (
    CancellationToken,
    OptimizationCancelled,
    check_cancelled,
)


def test_token_starts_uncancelled():
    token = CancellationToken()
    assert not token.cancelled
    token.raise_if_cancelled()


def test_cancel_is_sticky_and_raises():
    token = CancellationToken()
    token.cancel()
    assert token.cancelled
    with pytest.raises(OptimizationCancelled):
        token.raise_if_cancelled()
    with pytest.raises(OptimizationCancelled):
        check_cancelled(token)


def test_check_cancelled_accepts_none():
    check_cancelled(None)
