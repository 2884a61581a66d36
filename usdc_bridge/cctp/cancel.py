"""Cancellation of running transfers.

Attestation polling has no upper bound, so every wait inside a transfer
goes through a :py:class:`CancellationToken`. Cancelling wakes a sleeping
flow immediately instead of after the current poll interval.
"""

import threading

from usdc_bridge.cctp.errors import TransferCancelled


class CancellationToken:
    """Thread-safe, one-shot cancellation flag.

    Example::

        token = CancellationToken()

        # From another thread
        token.cancel()

        # Inside the transfer flow
        token.sleep(5.0)  # raises TransferCancelled
    """

    def __init__(self):
        self._event = threading.Event()

    def __repr__(self) -> str:
        return f"<CancellationToken cancelled={self.cancelled}>"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()

    def raise_if_cancelled(self):
        """:raise TransferCancelled: The token has been cancelled"""
        if self._event.is_set():
            raise TransferCancelled("Transfer was cancelled")

    def sleep(self, seconds: float):
        """Sleep, waking up early if cancelled.

        :raise TransferCancelled:
            Cancelled before or during the sleep
        """
        self.raise_if_cancelled()
        if self._event.wait(timeout=seconds):
            raise TransferCancelled("Transfer was cancelled")
