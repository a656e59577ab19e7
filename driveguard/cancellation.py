"""Cooperative cancellation for long scans and removals."""

import threading
from typing import Optional

from .errors import RunCancelled


class CancellationToken:
    """
    Flag checked before every Drive call.

    Setting it never interrupts a call in flight; the next checkpoint raises
    RunCancelled instead.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            suffix = f" before {where}" if where else ""
            raise RunCancelled(f"Run {self.reason}{suffix}")


def checkpoint(token: Optional[CancellationToken], where: str) -> None:
    """Raise RunCancelled if a token was given and has been cancelled."""
    if token is not None:
        token.raise_if_cancelled(where)
