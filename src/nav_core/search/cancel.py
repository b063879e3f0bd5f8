# src/nav_core/search/cancel.py

from __future__ import annotations

from threading import Event
from typing import Optional


class CancelToken:
    """Cooperative cancellation flag polled by running searches."""

    def __init__(self) -> None:
        self._event = Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "superseded") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
