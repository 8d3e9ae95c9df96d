"""
Crash classification for transaction outcomes.

Two stages:
1. Noise filter: resource exhaustion (out-of-memory, oversized transaction)
   is fuzzer-induced pressure and is discarded unconditionally.
2. Severity table keyed on the fault kind reported by the target.

Unknown fault kinds raised by the target are treated as crashes. Only kinds
known to be benign are denylisted, so an unfamiliar fault class is never
missed.

A reply the transport could not read is not a fault kind at all: it is
always an ANOMALY, whatever the session does next.
"""
from enum import Enum
from typing import FrozenSet, Iterable, Optional

import structlog

from txfuzz.config import settings
from txfuzz.models import Outcome, OutcomeKind, Severity

logger = structlog.get_logger()


class FaultClass(str, Enum):
    """Bucket a fault kind falls into"""

    SESSION_LOST = "session_lost"
    MEMORY_SAFETY = "memory_safety"
    PERMISSION = "permission"
    VALIDATION = "validation"
    RESOURCE_EXHAUSTION = "resource_exhaustion"
    UNCLASSIFIED = "unclassified"


RESOURCE_EXHAUSTION_KINDS: FrozenSet[str] = frozenset({
    "OutOfMemoryError",
    "MemoryError",
    "TransactionTooLargeException",
})
RESOURCE_EXHAUSTION_PATTERNS = ("outofmemoryerror", "out of memory", "transaction too large")

SESSION_LOST_KINDS: FrozenSet[str] = frozenset({
    "DeadObjectException",
    "SessionLost",
    "SessionLostError",
})

MEMORY_SAFETY_KINDS: FrozenSet[str] = frozenset({
    "RuntimeException",
    "RuntimeError",
    "IllegalStateException",
    "NullPointerException",
    "IndexOutOfBoundsException",
    "ArrayIndexOutOfBoundsException",
    "IndexError",
})

PERMISSION_KINDS: FrozenSet[str] = frozenset({
    "SecurityException",
    "PermissionError",
})

VALIDATION_KINDS: FrozenSet[str] = frozenset({
    "IllegalArgumentException",
    "ValueError",
    "UnsupportedOperationException",
    "NotImplementedError",
})


def simple_kind(kind: Optional[str]) -> str:
    """Strip a qualified class name down to its simple name."""
    if not kind:
        return ""
    return kind.rsplit(".", 1)[-1].rsplit("$", 1)[-1]


class CrashClassifier:
    """
    Maps an Outcome to a Severity, or None to discard it.

    Args:
        crash_kinds: Extra fault kinds to treat as crash-grade
        benign_kinds: Extra fault kinds to discard
        report_anomalies: Record remote rejections with unknown kinds at
            ANOMALY severity instead of discarding them
    """

    def __init__(
        self,
        crash_kinds: Optional[Iterable[str]] = None,
        benign_kinds: Optional[Iterable[str]] = None,
        report_anomalies: Optional[bool] = None,
    ):
        extra_crash = settings.crash_fault_kinds if crash_kinds is None else crash_kinds
        extra_benign = settings.benign_fault_kinds if benign_kinds is None else benign_kinds
        self.crash_kinds = MEMORY_SAFETY_KINDS | {simple_kind(k) for k in extra_crash}
        self.benign_kinds = {simple_kind(k) for k in extra_benign}
        self.report_anomalies = (
            settings.report_anomalies if report_anomalies is None else report_anomalies
        )

    @staticmethod
    def is_resource_exhaustion(kind: Optional[str], message: str = "") -> bool:
        if simple_kind(kind) in RESOURCE_EXHAUSTION_KINDS:
            return True
        lowered = (message or "").lower()
        return any(pattern in lowered for pattern in RESOURCE_EXHAUSTION_PATTERNS)

    def fault_class(self, kind: Optional[str], message: str = "") -> FaultClass:
        name = simple_kind(kind)
        if self.is_resource_exhaustion(name, message):
            return FaultClass.RESOURCE_EXHAUSTION
        if name in SESSION_LOST_KINDS:
            return FaultClass.SESSION_LOST
        if name in self.benign_kinds:
            return FaultClass.VALIDATION
        if name in self.crash_kinds:
            return FaultClass.MEMORY_SAFETY
        if name in PERMISSION_KINDS:
            return FaultClass.PERMISSION
        if name in VALIDATION_KINDS:
            return FaultClass.VALIDATION
        return FaultClass.UNCLASSIFIED

    def classify(self, outcome: Outcome, alive: Optional[bool] = None) -> Optional[Severity]:
        """
        Classify one outcome.

        Args:
            outcome: Outcome of a single transaction
            alive: Liveness probe taken after the transaction, if any.
                A dead session promotes a non-exhaustion fault to CRASH.

        Returns:
            Severity to record, or None to discard
        """
        if outcome.kind == OutcomeKind.ACCEPTED:
            return None

        if outcome.kind == OutcomeKind.DISCONNECTED:
            return Severity.CRASH

        if outcome.kind == OutcomeKind.HUNG:
            return Severity.CRASH if alive is False else Severity.TIMEOUT

        if outcome.kind == OutcomeKind.MALFORMED:
            return Severity.ANOMALY

        fault = self.fault_class(outcome.fault_kind, outcome.message)

        if fault == FaultClass.RESOURCE_EXHAUSTION:
            logger.debug(
                "resource_exhaustion_ignored",
                fault_kind=outcome.fault_kind,
                message=outcome.message,
            )
            return None

        if fault in (FaultClass.SESSION_LOST, FaultClass.MEMORY_SAFETY):
            return Severity.CRASH

        if alive is False:
            logger.warning(
                "session_died_after_fault",
                fault_kind=outcome.fault_kind,
                fault_class=fault.value,
            )
            return Severity.CRASH

        if fault in (FaultClass.PERMISSION, FaultClass.VALIDATION):
            return None

        if outcome.kind == OutcomeKind.REJECTED:
            return Severity.ANOMALY if self.report_anomalies else None

        logger.warning(
            "unclassified_fault_kind",
            fault_kind=outcome.fault_kind,
            message=outcome.message,
        )
        return Severity.CRASH
