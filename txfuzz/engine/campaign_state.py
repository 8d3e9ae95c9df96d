"""Campaign state shared between the campaign task and its observers."""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional, Tuple

from txfuzz.engine.result_ledger import ResultLedger
from txfuzz.exceptions import InvariantViolation
from txfuzz.models import CampaignPhase, CampaignStatus, FuzzResult, Severity


class CampaignState:
    """
    Flags and results for one campaign invocation.

    Written only by the campaign task; observers read through properties or
    snapshot(). Recording a crash and raising crash_found happen under the
    same lock, so crash_found never reads True before its result exists.
    """

    def __init__(self, ledger: Optional[ResultLedger] = None):
        self._lock = threading.RLock()
        self.ledger = ledger or ResultLedger()
        self._target: Optional[str] = None
        self._phase = CampaignPhase.IDLE
        self._running = False
        self._crash_found = False
        self._stop_requested = False
        self._continuous = False
        self._round = 0
        self._started_at: Optional[datetime] = None
        self._completed_at: Optional[datetime] = None

    # -- observers -------------------------------------------------------

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def crash_found(self) -> bool:
        with self._lock:
            return self._crash_found

    @property
    def stop_requested(self) -> bool:
        with self._lock:
            return self._stop_requested

    @property
    def phase(self) -> CampaignPhase:
        with self._lock:
            return self._phase

    @property
    def round(self) -> int:
        with self._lock:
            return self._round

    @property
    def target(self) -> Optional[str]:
        with self._lock:
            return self._target

    @property
    def results(self) -> Tuple[FuzzResult, ...]:
        return self.ledger.snapshot()

    def snapshot(self) -> CampaignStatus:
        with self._lock:
            return CampaignStatus(
                target=self._target,
                phase=self._phase,
                running=self._running,
                crash_found=self._crash_found,
                stop_requested=self._stop_requested,
                continuous=self._continuous,
                round=self._round,
                result_count=len(self.ledger),
                started_at=self._started_at,
                completed_at=self._completed_at,
            )

    # -- writers (campaign task only) ------------------------------------

    def reset(self, target: str, continuous: bool) -> None:
        with self._lock:
            self.ledger.clear()
            self._target = target
            self._phase = CampaignPhase.BINDING
            self._running = True
            self._crash_found = False
            self._stop_requested = False
            self._continuous = continuous
            self._round = 1
            self._started_at = datetime.utcnow()
            self._completed_at = None

    def set_phase(self, phase: CampaignPhase) -> None:
        with self._lock:
            self._phase = phase

    def next_round(self) -> int:
        with self._lock:
            self._round += 1
            return self._round

    def request_stop(self) -> None:
        with self._lock:
            self._stop_requested = True

    def finish(self, phase: CampaignPhase) -> None:
        with self._lock:
            self._phase = phase
            self._running = False
            self._completed_at = datetime.utcnow()

    def record(self, result: FuzzResult) -> bool:
        """Append a finding; crash-grade findings raise crash_found. Returns True on crash."""
        is_crash = result.severity == Severity.CRASH
        with self._lock:
            self.ledger.append(result)
            if is_crash:
                self._crash_found = True
            if self._crash_found and not self.ledger.has_crash():
                raise InvariantViolation("crash_found set without a crash result")
        return is_crash
