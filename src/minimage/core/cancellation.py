"""Cooperative cancellation for one run."""

from __future__ import annotations

import threading


class CancellationToken:
    """One-shot cancellation flag shared by every pipeline of a run.

    The trigger (usually the key listener) calls ``cancel``; pipelines and
    gateway callbacks poll ``cancelled``. Once set it stays set.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Trip the token.

        Returns:
            True if this call performed the transition, False if the token
            was already cancelled.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"CancellationToken({state})"
