"""
Transaction Cycle - executes one (code, test case) trial against a session.

Steps:
    encode -> submit -> observe -> classify -> record

Error Handling:
--------------
Every failure is turned into an Outcome at this layer; nothing escapes to
the campaign controller:
- SessionLostError       -> DISCONNECTED
- ReceiveTimeoutError    -> HUNG
- ReceiveError           -> MALFORMED (unreadable reply, recorded as ANOMALY)
- TargetFault            -> REJECTED (recoverable) / FATAL_UNEXPECTED
- anything else          -> FATAL_UNEXPECTED (kind = exception class name)

A payload that cannot be encoded, whatever the writer raised, is an engine
fault and not a target fault: it is recorded with EXCEPTION severity and
never submitted. A MALFORMED reply is recorded as an ANOMALY and never sets
crash_found.

After a fault the session's liveness is probed and handed to the classifier
so a fault that took the target down is still reported as a crash.
"""
from __future__ import annotations

from typing import Optional

import structlog

from txfuzz.engine.campaign_state import CampaignState
from txfuzz.engine.crash_classifier import CrashClassifier
from txfuzz.engine.parcel import Parcel, obtain_parcels
from txfuzz.engine.payload_encoder import PayloadEncoder
from txfuzz.engine.transport import TargetSession
from txfuzz.exceptions import (
    ReceiveError,
    ReceiveTimeoutError,
    SerializationError,
    SessionLostError,
    TargetFault,
)
from txfuzz.models import FuzzResult, Outcome, OutcomeKind, Severity, TestCase

logger = structlog.get_logger()


class TransactionCycle:
    """Runs single trials and records non-trivial outcomes in the campaign state."""

    def __init__(
        self,
        state: CampaignState,
        classifier: Optional[CrashClassifier] = None,
        encoder: Optional[PayloadEncoder] = None,
    ):
        self.state = state
        self.classifier = classifier or CrashClassifier()
        self.encoder = encoder or PayloadEncoder()

    async def run(self, session: TargetSession, code: int, test_case: TestCase) -> Outcome:
        """
        Execute one trial.

        Args:
            session: Live session owned by the controller
            code: Transaction code
            test_case: Corpus test case

        Returns:
            The observed Outcome
        """
        with obtain_parcels() as (data, reply):
            try:
                self.encoder.encode(data, test_case, session.interface_token)
            except Exception as exc:
                message = exc.message if isinstance(exc, SerializationError) else str(exc)
                outcome = Outcome.fatal(type(exc).__name__, message)
                logger.error(
                    "payload_encoding_failed",
                    code=code,
                    input=test_case.label,
                    error=message,
                    error_type=type(exc).__name__,
                )
                self._record(session, code, test_case, outcome, Severity.EXCEPTION)
                return outcome

            outcome = await self._submit(session, code, test_case, data, reply)

        alive: Optional[bool] = None
        if outcome.kind in (OutcomeKind.REJECTED, OutcomeKind.FATAL_UNEXPECTED, OutcomeKind.HUNG):
            alive = self._probe(session)

        severity = self.classifier.classify(outcome, alive=alive)
        if severity is not None:
            self._record(session, code, test_case, outcome, severity)
        return outcome

    async def _submit(
        self,
        session: TargetSession,
        code: int,
        test_case: TestCase,
        data: Parcel,
        reply: Parcel,
    ) -> Outcome:
        try:
            accepted = await session.transact(code, data, reply)
            return Outcome.accepted_call(accepted)
        except SessionLostError as exc:
            return Outcome.disconnected(exc.message)
        except ReceiveTimeoutError as exc:
            return Outcome.hung(exc.message)
        except ReceiveError as exc:
            logger.warning(
                "malformed_reply",
                code=code,
                input=test_case.label,
                error=exc.message,
            )
            return Outcome.malformed(exc.message)
        except TargetFault as exc:
            if exc.recoverable:
                return Outcome.rejected(exc.kind, exc.fault_message)
            return Outcome.fatal(exc.kind, exc.fault_message)
        except Exception as exc:
            logger.debug(
                "transaction_raised",
                code=code,
                input=test_case.label,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return Outcome.fatal(type(exc).__name__, str(exc))

    @staticmethod
    def _probe(session: TargetSession) -> Optional[bool]:
        try:
            return session.is_alive()
        except Exception as exc:
            logger.warning("liveness_probe_failed", error=str(exc), error_type=type(exc).__name__)
            return None

    def _record(
        self,
        session: TargetSession,
        code: int,
        test_case: TestCase,
        outcome: Outcome,
        severity: Severity,
    ) -> None:
        result = FuzzResult(
            target=self.state.target or session.name,
            transaction_code=code,
            input_label=test_case.label,
            outcome_label=outcome.label,
            severity=severity,
        )
        if self.state.record(result):
            logger.error(
                "crash_found",
                target=result.target,
                code=code,
                input=test_case.label,
                outcome=outcome.label,
            )
        else:
            logger.warning(
                "finding_recorded",
                target=result.target,
                code=code,
                input=test_case.label,
                outcome=outcome.label,
                severity=severity.value,
            )
