"""
Core data models
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple
from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Severity category of a recorded finding"""

    CRASH = "crash"
    EXCEPTION = "exception"
    TIMEOUT = "timeout"
    ANOMALY = "anomaly"


class CampaignPhase(str, Enum):
    """Campaign controller state"""

    IDLE = "idle"
    BINDING = "binding"
    FUZZING = "fuzzing"
    CRASH_HALTED = "crash_halted"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class ValueKind(str, Enum):
    """Primitive types the payload codec can write"""

    INT32 = "int32"
    INT64 = "int64"
    FLOAT = "float"
    DOUBLE = "double"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    INT_ARRAY = "int_array"
    STRING_ARRAY = "string_array"


class Category(str, Enum):
    """Corpus categories, declared in campaign iteration order"""

    EMPTY = "empty"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    STRING = "string"
    BYTES = "bytes"
    INT_ARRAY = "int_array"
    STRING_ARRAY = "string_array"
    COMBINATION = "combination"


CATEGORY_ORDER: Tuple[Category, ...] = tuple(Category)


@dataclass(frozen=True)
class TypedValue:
    """One value plus the primitive used to write it"""

    kind: ValueKind
    value: Any


@dataclass(frozen=True)
class TestCase:
    """Labelled payload drawn from the corpus"""

    __test__ = False  # keep pytest from collecting this class

    category: Category
    label: str
    values: Tuple[TypedValue, ...] = ()


class OutcomeKind(str, Enum):
    """How a single transaction submission ended"""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DISCONNECTED = "disconnected"
    HUNG = "hung"
    FATAL_UNEXPECTED = "fatal_unexpected"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class Outcome:
    """Tagged result of one transaction"""

    kind: OutcomeKind
    fault_kind: Optional[str] = None
    message: str = ""
    accepted: bool = False

    @classmethod
    def accepted_call(cls, accepted: bool) -> "Outcome":
        return cls(OutcomeKind.ACCEPTED, accepted=accepted)

    @classmethod
    def rejected(cls, fault_kind: str, message: str = "") -> "Outcome":
        return cls(OutcomeKind.REJECTED, fault_kind=fault_kind, message=message)

    @classmethod
    def disconnected(cls, message: str = "") -> "Outcome":
        return cls(OutcomeKind.DISCONNECTED, fault_kind="SessionLost", message=message)

    @classmethod
    def hung(cls, message: str = "") -> "Outcome":
        return cls(OutcomeKind.HUNG, message=message)

    @classmethod
    def fatal(cls, fault_kind: str, message: str = "") -> "Outcome":
        return cls(OutcomeKind.FATAL_UNEXPECTED, fault_kind=fault_kind, message=message)

    @classmethod
    def malformed(cls, message: str = "") -> "Outcome":
        return cls(OutcomeKind.MALFORMED, fault_kind="MalformedReply", message=message)

    @property
    def label(self) -> str:
        """Human-readable description used in findings"""
        if self.kind == OutcomeKind.ACCEPTED:
            return "Accepted" if self.accepted else "Declined"
        if self.kind == OutcomeKind.DISCONNECTED:
            return "SessionLost - target died"
        if self.kind == OutcomeKind.HUNG:
            return "Timeout - no reply"
        if self.kind == OutcomeKind.MALFORMED:
            prefix = "Anomaly"
        elif self.kind == OutcomeKind.REJECTED:
            prefix = "Rejected"
        else:
            prefix = "Crash"
        if self.message:
            return f"{prefix}: {self.fault_kind} - {self.message}"
        return f"{prefix}: {self.fault_kind}"


class FuzzResult(BaseModel):
    """Finding recorded in the result ledger"""

    model_config = {"frozen": True}

    target: str
    transaction_code: int
    input_label: str
    outcome_label: str
    severity: Severity
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class TargetCandidate(BaseModel):
    """Target returned by enumeration"""

    identity: str
    endpoint_name: str

    @property
    def full_name(self) -> str:
        return f"{self.identity}/{self.endpoint_name}"


class CampaignStatus(BaseModel):
    """Observer snapshot of the campaign state"""

    target: Optional[str] = None
    phase: CampaignPhase = CampaignPhase.IDLE
    running: bool = False
    crash_found: bool = False
    stop_requested: bool = False
    continuous: bool = False
    round: int = 0
    result_count: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class StartCampaignRequest(BaseModel):
    """Campaign start request"""

    identity: str
    endpoint_name: str
    continuous: bool = Field(
        default=True, description="Re-bind and repeat rounds until a crash is found"
    )


class CampaignResults(BaseModel):
    """Result ledger listing"""

    target: Optional[str] = None
    crash_found: bool = False
    total_count: int = 0
    results: List[FuzzResult] = Field(default_factory=list)
