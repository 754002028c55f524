"""Tests for CancellationToken."""

import time

import pytest

from pyexec.cancellation import CancellationToken
from pyexec.errors import OperationCancelled


def test_new_token_not_cancelled():
    token = CancellationToken()
    assert not token.is_cancellation_requested
    assert token.remaining() is None
    token.raise_if_cancelled()


def test_cancel():
    token = CancellationToken()
    token.cancel()
    assert token.is_cancellation_requested
    with pytest.raises(OperationCancelled, match="fetch cancelled"):
        token.raise_if_cancelled("fetch")


def test_cancelled_factory():
    assert CancellationToken.cancelled().is_cancellation_requested


def test_deadline_fires():
    token = CancellationToken(timeout=0.01)
    time.sleep(0.05)
    assert token.is_cancellation_requested
    assert token.remaining() == 0.0


def test_remaining_counts_down():
    token = CancellationToken(timeout=60)
    assert 0 < token.remaining() <= 60
