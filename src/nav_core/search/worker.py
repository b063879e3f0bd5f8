# background search execution and result hand-off
# src/nav_core/search/worker.py
"""
Runs path searches off the tick thread.

- SearchRequest: one planner invocation tagged with a monotonically
  increasing id and its own CancelToken.
- ResultMailbox: single-slot hand-off. A result is only delivered if its
  id matches the latest submitted request; late results from superseded
  searches are dropped.
- SearchWorker: submits requests on a daemon thread (background mode) or
  runs them inline (synchronous mode, used by tests and the CLI demo).

A planner raising is reported as a SearchResult with outcome ERROR; it
never propagates into the tick loop.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .astar import SearchOutcome, SearchResult
from .cancel import CancelToken


log = logging.getLogger(__name__)


Planner = Callable[[CancelToken], SearchResult]


@dataclass
class SearchRequest:
    request_id: int
    planner: Planner
    cancel: CancelToken = field(default_factory=CancelToken)
    label: str = ""


class ResultMailbox:
    """Latest-wins slot for finished search results."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._expected: int = 0
        self._result: Optional[SearchResult] = None
        self.dropped = 0

    def expect(self, request_id: int) -> None:
        with self._lock:
            self._expected = request_id
            self._result = None

    def put(self, result: SearchResult) -> bool:
        with self._lock:
            if result.request_id != self._expected:
                self.dropped += 1
                return False
            self._result = result
            return True

    def take(self) -> Optional[SearchResult]:
        with self._lock:
            result, self._result = self._result, None
            return result


class SearchWorker:
    """
    Owns at most one in-flight search.

    Submitting a new request cancels the previous one; whichever finishes
    first, only the newest result can be polled.
    """

    def __init__(self, *, background: bool = True) -> None:
        self.background = background
        self.mailbox = ResultMailbox()
        self._ids = itertools.count(1)
        self._current: Optional[SearchRequest] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def current(self) -> Optional[SearchRequest]:
        return self._current

    @property
    def busy(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive()

    def submit(self, planner: Planner, *, label: str = "") -> SearchRequest:
        self.cancel_current("superseded")
        request = SearchRequest(request_id=next(self._ids), planner=planner, label=label)
        self._current = request
        self.mailbox.expect(request.request_id)
        log.debug("search request %d submitted (%s)", request.request_id, label)

        if self.background:
            thread = threading.Thread(
                target=self._run,
                args=(request,),
                name=f"nav-search-{request.request_id}",
                daemon=True,
            )
            self._thread = thread
            thread.start()
        else:
            self._run(request)
        return request

    def cancel_current(self, reason: str = "canceled") -> None:
        if self._current is not None:
            self._current.cancel.cancel(reason)

    def poll(self) -> Optional[SearchResult]:
        result = self.mailbox.take()
        if result is not None and self._current is not None and result.request_id == self._current.request_id:
            self._current = None
        return result

    def join(self, timeout: Optional[float] = None) -> None:
        t = self._thread
        if t is not None:
            t.join(timeout)

    def close(self) -> None:
        self.cancel_current("shutdown")
        self.join(timeout=1.0)
        self._current = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(self, request: SearchRequest) -> None:
        t0 = time.monotonic()
        try:
            result = request.planner(request.cancel)
        except Exception as exc:
            log.exception("search request %d failed", request.request_id)
            result = SearchResult(
                outcome=SearchOutcome.ERROR,
                path=None,
                nodes_explored=0,
                duration_s=time.monotonic() - t0,
                reason=f"{type(exc).__name__}: {exc}",
            )
        result.request_id = request.request_id
        if not self.mailbox.put(result):
            log.debug("dropped stale result for request %d", request.request_id)
