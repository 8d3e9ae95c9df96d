"""
Custom Exception Hierarchy for the Transaction Fuzzer

Splits failures into three families that the engine treats differently:
- TransportError: the link to the target misbehaved (connect, send, receive)
- TargetFault: the target answered a transaction with a structured failure
- FuzzerError subclasses outside those two: defects in the engine itself

All custom exceptions inherit from FuzzerError.
"""
from typing import Optional


class FuzzerError(Exception):
    """
    Base exception for all fuzzer-specific errors.

    Carries a message plus a free-form details dict for structured logging.
    """
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(FuzzerError):
    """Invalid settings, e.g. a malformed target entry."""
    pass


# Network and Transport Errors

class TransportError(FuzzerError):
    """
    Transport failures.

    Base class for communication errors. Distinguishes link problems from
    faults reported by the target itself.
    """
    pass


class ConnectError(TransportError):
    """Failed to establish a session with the target."""
    pass


class ConnectionTimeoutError(ConnectError):
    """Session could not be bound within the bind timeout."""
    pass


class ReceiveError(TransportError):
    """Failed to receive a reply from the target."""
    pass


class ReceiveTimeoutError(ReceiveError):
    """Timeout waiting for a reply (potential hang)."""
    pass


class SessionLostError(TransportError):
    """
    The session died mid-transaction.

    The target process exited or the peer closed the link. This is the
    strongest crash signal the engine gets.
    """
    pass


# Target Faults

class TargetFault(FuzzerError):
    """
    Structured failure reported by the target for one transaction.

    Args:
        kind: Fault class name as reported by the target
            (e.g. "NullPointerException", "IllegalArgumentException")
        message: Fault message text, may be empty
        recoverable: True when the transport flags the failure as an
            ordinary remote rejection rather than a raised fault
    """
    def __init__(self, kind: str, message: str = "", recoverable: bool = False):
        super().__init__(message or kind, {"kind": kind, "recoverable": recoverable})
        self.kind = kind
        self.fault_message = message
        self.recoverable = recoverable


# Encoding Errors

class SerializationError(FuzzerError):
    """Failed to write a value into the payload buffer."""
    pass


# Engine Errors

class InvariantViolation(FuzzerError):
    """
    Internal invariant violated.

    Indicates a bug in the fuzzer itself (should never happen).
    """
    pass
