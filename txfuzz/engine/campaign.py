"""
Campaign Controller - runs a fuzzing campaign against one target.

State machine:
--------------
    IDLE -> BINDING -> FUZZING -> {CRASH_HALTED | EXHAUSTED | CANCELLED} -> IDLE

- BINDING: acquire a session from the provider, racing the connect against
  the stop event with a bounded timeout. Timeout or failure ends the
  campaign without findings (continuous mode may retry up to
  bind_retry_limit consecutive failures).
- FUZZING: codes 1..max_transaction_code ascending; for each code every
  corpus category in fixed order. The first crash-grade result ends the
  round, and so does a malformed reply after which the transport dropped
  the session (no crash is recorded for it).
- Continuous mode: a round without a crash releases the session, waits
  inter_round_delay_ms and binds again, until a crash or cancellation.

Cancellation is cooperative. The stop flag is checked before binding, before
each round, before each transaction code and before each test case; delays
wake up as soon as it is set. An in-flight transaction is never interrupted.

The session of a round is released exactly once on every exit path. A fault
raised by the controller's own loop is recorded as a code-0 EXCEPTION
finding and ends the round, not the campaign.

Usage Example:
-------------
    controller = CampaignController(TcpSessionProvider())

    controller.start_campaign("demo", "127.0.0.1:7100", continuous=True)
    ...
    controller.cancel()
    await controller.wait()

    # or run inline
    status = await controller.run_campaign("demo", "127.0.0.1:7100")
"""
from __future__ import annotations

import asyncio
import traceback
from typing import List, Optional, Tuple

import structlog

from txfuzz.config import settings
from txfuzz.engine.campaign_state import CampaignState
from txfuzz.engine.corpus_generator import CorpusGenerator
from txfuzz.engine.crash_classifier import CrashClassifier
from txfuzz.engine.transaction_cycle import TransactionCycle
from txfuzz.engine.transport import SessionProvider, TargetSession
from txfuzz.models import (
    CampaignPhase,
    CampaignStatus,
    Category,
    FuzzResult,
    OutcomeKind,
    Severity,
    TargetCandidate,
    TestCase,
)

logger = structlog.get_logger()


class CampaignController:
    """
    Top-level campaign state machine.

    Observers read running / crash_found / results (or status()) from any
    thread; only the campaign task writes them.
    """

    def __init__(
        self,
        provider: SessionProvider,
        corpus: Optional[CorpusGenerator] = None,
        classifier: Optional[CrashClassifier] = None,
        state: Optional[CampaignState] = None,
        max_transaction_code: Optional[int] = None,
        bind_timeout_ms: Optional[int] = None,
        bind_retry_limit: Optional[int] = None,
        inter_trial_delay_ms: Optional[int] = None,
        inter_round_delay_ms: Optional[int] = None,
    ):
        self.provider = provider
        self.corpus = corpus or CorpusGenerator()
        self.state = state or CampaignState()
        self.cycle = TransactionCycle(self.state, classifier or CrashClassifier())

        self.max_transaction_code = _pick(max_transaction_code, settings.max_transaction_code)
        self.bind_timeout_sec = _pick(bind_timeout_ms, settings.bind_timeout_ms) / 1000.0
        self.bind_retry_limit = _pick(bind_retry_limit, settings.bind_retry_limit)
        self.inter_trial_delay_sec = _pick(inter_trial_delay_ms, settings.inter_trial_delay_ms) / 1000.0
        self.inter_round_delay_sec = _pick(inter_round_delay_ms, settings.inter_round_delay_ms) / 1000.0

        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None

    # -- observable state ------------------------------------------------

    @property
    def running(self) -> bool:
        return self.state.running

    @property
    def crash_found(self) -> bool:
        return self.state.crash_found

    @property
    def results(self) -> Tuple[FuzzResult, ...]:
        return self.state.results

    def status(self) -> CampaignStatus:
        return self.state.snapshot()

    def list_targets(self) -> List[TargetCandidate]:
        """Enumerate candidate targets; an enumeration failure yields an empty list."""
        try:
            return list(self.provider.list_candidates())
        except Exception as exc:
            logger.error("target_enumeration_failed", error=str(exc), error_type=type(exc).__name__)
            return []

    # -- control ---------------------------------------------------------

    def start_campaign(self, identity: str, endpoint_name: str, continuous: bool = True) -> bool:
        """
        Start a campaign as a background task on the running event loop.

        Returns:
            False (no-op) if a campaign is already running
        """
        if self.state.running:
            logger.warning("campaign_already_running", target=self.state.target)
            return False

        self._prepare(identity, endpoint_name, continuous)
        self._task = asyncio.get_running_loop().create_task(
            self._run(identity, endpoint_name, continuous)
        )
        logger.info("campaign_started", target=self.state.target, continuous=continuous)
        return True

    async def run_campaign(
        self, identity: str, endpoint_name: str, continuous: bool = False
    ) -> CampaignStatus:
        """Run a campaign inline and return its final status."""
        if self.state.running:
            logger.warning("campaign_already_running", target=self.state.target)
            return self.state.snapshot()

        self._prepare(identity, endpoint_name, continuous)
        await self._run(identity, endpoint_name, continuous)
        return self.state.snapshot()

    def cancel(self) -> None:
        """Request cooperative cancellation. Safe from any thread; no-op when idle."""
        if not self.state.running:
            return
        self.state.request_stop()
        logger.info("campaign_cancel_requested", target=self.state.target)
        if self._loop is not None and self._stop_event is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._stop_event.set)

    async def wait(self) -> None:
        """Wait for the background campaign task to finish."""
        if self._task is not None:
            await self._task

    # -- campaign body ---------------------------------------------------

    def _prepare(self, identity: str, endpoint_name: str, continuous: bool) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self.state.reset(f"{identity}/{endpoint_name}", continuous)

    def _should_stop(self) -> bool:
        return self.state.stop_requested

    async def _run(self, identity: str, endpoint_name: str, continuous: bool) -> None:
        final_phase = CampaignPhase.EXHAUSTED
        bind_failures = 0
        try:
            while True:
                if self._should_stop():
                    final_phase = CampaignPhase.CANCELLED
                    break

                round_number = self.state.round
                logger.info("fuzzing_round_started", target=self.state.target, round=round_number)

                session = await self._bind(identity, endpoint_name)
                if session is None:
                    if self._should_stop():
                        final_phase = CampaignPhase.CANCELLED
                        break
                    bind_failures += 1
                    if not continuous or bind_failures > self.bind_retry_limit:
                        final_phase = CampaignPhase.IDLE
                        break
                    await self._sleep(self.inter_round_delay_sec * (2 ** (bind_failures - 1)))
                    self.state.next_round()
                    continue

                bind_failures = 0
                try:
                    await self._fuzz_round(session, round_number)
                finally:
                    await self._release(session)

                if self.state.crash_found:
                    logger.warning("campaign_crash_halted", target=self.state.target, round=round_number)
                    final_phase = CampaignPhase.CRASH_HALTED
                    break
                if self._should_stop():
                    final_phase = CampaignPhase.CANCELLED
                    break
                if not continuous:
                    final_phase = CampaignPhase.EXHAUSTED
                    break

                logger.info("round_exhausted_no_crash", target=self.state.target, round=round_number)
                await self._sleep(self.inter_round_delay_sec)
                self.state.next_round()
        except asyncio.CancelledError:
            final_phase = CampaignPhase.CANCELLED
            raise
        finally:
            self.state.finish(final_phase)
            logger.info(
                "campaign_finished",
                target=self.state.target,
                phase=final_phase.value,
                results=len(self.state.ledger),
                crash_found=self.state.crash_found,
            )

    async def _bind(self, identity: str, endpoint_name: str) -> Optional[TargetSession]:
        self.state.set_phase(CampaignPhase.BINDING)
        assert self._stop_event is not None

        connect_task = asyncio.ensure_future(self.provider.connect(identity, endpoint_name))
        stop_task = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {connect_task, stop_task},
                timeout=self.bind_timeout_sec,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stop_task.cancel()

        if connect_task not in done:
            await self._abandon_connect(connect_task)
            if self._should_stop():
                logger.info("binding_cancelled", target=self.state.target)
            else:
                logger.error(
                    "bind_timeout",
                    target=self.state.target,
                    timeout_sec=self.bind_timeout_sec,
                )
            return None

        try:
            session = connect_task.result()
        except Exception as exc:
            logger.error(
                "bind_failed",
                target=self.state.target,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        token = await session.resolve_identity_token()
        if token is not None:
            logger.debug("interface_token_resolved", target=session.name, token=token)
        else:
            logger.warning("no_interface_token", target=session.name)
        return session

    async def _abandon_connect(self, connect_task: asyncio.Future) -> None:
        connect_task.cancel()
        try:
            session = await connect_task
        except asyncio.CancelledError:
            return
        except Exception as exc:
            logger.debug("abandoned_connect_failed", error=str(exc))
            return
        # connect finished while being cancelled
        await self._release(session)

    async def _release(self, session: TargetSession) -> None:
        try:
            await self.provider.disconnect(session)
            logger.debug("session_released", target=session.name)
        except Exception as exc:
            logger.warning(
                "session_release_failed",
                target=session.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _fuzz_round(self, session: TargetSession, round_number: int) -> None:
        self.state.set_phase(CampaignPhase.FUZZING)
        try:
            await self._fuzz_all_codes(session)
        except Exception as exc:
            logger.error(
                "fuzzing_round_error",
                target=self.state.target,
                round=round_number,
                error=str(exc),
                error_type=type(exc).__name__,
                traceback=traceback.format_exc(),
            )
            self.state.record(
                FuzzResult(
                    target=self.state.target or session.name,
                    transaction_code=0,
                    input_label="Fatal",
                    outcome_label=f"Fuzzer error: {type(exc).__name__}",
                    severity=Severity.EXCEPTION,
                )
            )

    async def _fuzz_all_codes(self, session: TargetSession) -> None:
        corpus = list(self.corpus.iter_corpus())

        for code in range(1, self.max_transaction_code + 1):
            if self._should_stop() or self.state.crash_found:
                return

            logger.debug("testing_transaction_code", target=session.name, code=code)
            for category, test_cases in corpus:
                if await self._fuzz_category(session, code, category, test_cases):
                    return

    async def _fuzz_category(
        self,
        session: TargetSession,
        code: int,
        category: Category,
        test_cases: Tuple[TestCase, ...],
    ) -> bool:
        """
        Run one category for one code.

        Returns True when the round has to end: a crash was recorded, or the
        transport dropped the session after a malformed reply.
        """
        for test_case in test_cases:
            if self._should_stop():
                return False

            outcome = await self.cycle.run(session, code, test_case)
            if self.state.crash_found:
                logger.debug(
                    "category_aborted_on_crash",
                    code=code,
                    category=category.value,
                    input=test_case.label,
                )
                return True
            if outcome.kind == OutcomeKind.MALFORMED and not session.is_alive():
                logger.warning(
                    "session_dropped_after_malformed_reply",
                    target=session.name,
                    code=code,
                    input=test_case.label,
                )
                return True

            await self._sleep(self.inter_trial_delay_sec)
        return False

    async def _sleep(self, delay_sec: float) -> None:
        """Sleep that returns early once cancellation is requested."""
        if delay_sec <= 0 or self._stop_event is None:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay_sec)
        except asyncio.TimeoutError:
            pass


def _pick(value: Optional[int], default: int) -> int:
    return default if value is None else value
