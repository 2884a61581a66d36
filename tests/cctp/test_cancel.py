"""Cancellation token."""

import threading
import time

import pytest

from usdc_bridge.cctp.cancel import CancellationToken
from usdc_bridge.cctp.errors import TransferCancelled


def test_cancel():
    token = CancellationToken()
    assert not token.cancelled
    token.raise_if_cancelled()

    token.cancel()

    assert token.cancelled
    with pytest.raises(TransferCancelled):
        token.raise_if_cancelled()
    with pytest.raises(TransferCancelled):
        token.sleep(0)


def test_sleep_wakes_on_cancel():
    """A long sleep ends as soon as another thread cancels."""
    token = CancellationToken()
    threading.Timer(0.05, token.cancel).start()

    started = time.time()
    with pytest.raises(TransferCancelled):
        token.sleep(30)

    assert time.time() - started < 10


def test_sleep_completes():
    token = CancellationToken()
    token.sleep(0.01)
    assert not token.cancelled
