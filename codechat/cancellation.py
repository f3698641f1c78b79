"""Co-operative cancellation.

A :class:`CancellationToken` is created by whoever starts a long operation
(one chat turn, typically) and passed down the call chain. Workers poll it
at their suspension points: between streamed chunks, before and after each
action, and while waiting on a child process.
"""

from __future__ import annotations

import threading

from .errors import OperationCancelled


class CancellationToken:
    """Thread-safe, one-shot cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled")

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return ``True`` early if cancelled."""
        return self._event.wait(timeout)


__all__ = ["CancellationToken"]
