"""
Result Ledger - append-only record of campaign findings.

Findings are kept in discovery order with no deduplication and no
replacement. Readers get immutable snapshots; listeners are notified after
every append so observers can follow a campaign live.
"""
from __future__ import annotations

import threading
from typing import Callable, List, Optional, Tuple

import structlog

from txfuzz.models import FuzzResult, Severity

logger = structlog.get_logger()

Listener = Callable[[FuzzResult], None]


class ResultLedger:
    """Thread-safe, append-only FuzzResult sequence."""

    def __init__(self):
        self._lock = threading.Lock()
        self._results: List[FuzzResult] = []
        self._listeners: List[Listener] = []

    def append(self, result: FuzzResult) -> int:
        """Append a finding and return the new ledger length."""
        with self._lock:
            self._results.append(result)
            size = len(self._results)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(result)
            except Exception as exc:
                logger.warning(
                    "ledger_listener_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
        return size

    def clear(self) -> None:
        with self._lock:
            self._results = []

    def snapshot(self) -> Tuple[FuzzResult, ...]:
        with self._lock:
            return tuple(self._results)

    def count(self, severity: Optional[Severity] = None) -> int:
        with self._lock:
            if severity is None:
                return len(self._results)
            return sum(1 for r in self._results if r.severity == severity)

    def has_crash(self) -> bool:
        return self.count(Severity.CRASH) > 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def __len__(self) -> int:
        return self.count()
