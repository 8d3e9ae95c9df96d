"""
Tests for ResultLedger and CampaignState.

Tests cover:
- Append order, no deduplication
- Snapshots are immutable copies
- Listener notification and unsubscribe
- crash_found raised together with its result
"""
import threading

import pytest

from txfuzz.engine.campaign_state import CampaignState
from txfuzz.engine.result_ledger import ResultLedger
from txfuzz.models import CampaignPhase, FuzzResult, Severity


def make_result(code: int = 1, severity: Severity = Severity.EXCEPTION, label: str = "i32=0"):
    return FuzzResult(
        target="com.example/endpoint",
        transaction_code=code,
        input_label=label,
        outcome_label="Crash: X",
        severity=severity,
    )


class TestResultLedger:
    def test_append_preserves_order_and_duplicates(self):
        """Test that appends keep order and duplicates."""
        ledger = ResultLedger()
        first = make_result(1)
        second = make_result(2)
        assert ledger.append(first) == 1
        assert ledger.append(second) == 2
        assert ledger.append(first) == 3
        assert ledger.snapshot() == (first, second, first)
        assert len(ledger) == 3

    def test_snapshot_is_detached(self):
        """Test that a snapshot does not change after later appends."""
        ledger = ResultLedger()
        ledger.append(make_result())
        snapshot = ledger.snapshot()
        ledger.append(make_result(2))
        assert len(snapshot) == 1
        assert len(ledger.snapshot()) == 2

    def test_count_by_severity(self):
        """Test per-severity counts."""
        ledger = ResultLedger()
        ledger.append(make_result(severity=Severity.TIMEOUT))
        ledger.append(make_result(severity=Severity.CRASH))
        assert ledger.count() == 2
        assert ledger.count(Severity.CRASH) == 1
        assert ledger.has_crash()

    def test_clear(self):
        """Test that clear() empties the ledger."""
        ledger = ResultLedger()
        ledger.append(make_result())
        ledger.clear()
        assert len(ledger) == 0

    def test_listener_notified_and_unsubscribed(self):
        """Test that listeners are notified until they unsubscribe."""
        ledger = ResultLedger()
        seen = []
        unsubscribe = ledger.subscribe(seen.append)
        result = make_result()
        ledger.append(result)
        unsubscribe()
        ledger.append(make_result(2))
        assert seen == [result]

    def test_failing_listener_does_not_block_append(self):
        """Test that a raising listener does not block appends."""
        ledger = ResultLedger()

        def broken(_result):
            raise RuntimeError("listener bug")

        ledger.subscribe(broken)
        assert ledger.append(make_result()) == 1

    def test_concurrent_appends(self):
        """Test that appends from many threads are all kept."""
        ledger = ResultLedger()

        def worker():
            for i in range(100):
                ledger.append(make_result(i))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(ledger) == 400


class TestCampaignState:
    @pytest.fixture
    def state(self):
        state = CampaignState()
        state.reset("com.example/endpoint", continuous=False)
        return state

    def test_reset(self, state):
        """Test that reset() starts a running campaign."""
        status = state.snapshot()
        assert status.running
        assert status.phase == CampaignPhase.BINDING
        assert status.round == 1
        assert status.result_count == 0
        assert not status.crash_found

    def test_non_crash_record_keeps_flag_clear(self, state):
        """Test that a non-crash finding leaves crash_found clear."""
        assert state.record(make_result(severity=Severity.TIMEOUT)) is False
        assert not state.crash_found
        assert len(state.results) == 1

    def test_crash_record_raises_flag(self, state):
        """Test that a crash finding raises crash_found."""
        assert state.record(make_result(severity=Severity.CRASH)) is True
        assert state.crash_found
        assert state.results[-1].severity == Severity.CRASH

    def test_flag_observed_only_with_result(self, state):
        """Test that crash_found is never seen without its result."""
        observed = []

        def listener(_result):
            # listener runs inside record(); the result is already stored
            observed.append((state.crash_found, len(state.results)))

        state.ledger.subscribe(listener)
        state.record(make_result(severity=Severity.CRASH))
        assert observed == [(False, 1)]
        assert state.crash_found

    def test_finish(self, state):
        """Test that finish() records the terminal phase."""
        state.request_stop()
        state.finish(CampaignPhase.CANCELLED)
        status = state.snapshot()
        assert not status.running
        assert status.stop_requested
        assert status.phase == CampaignPhase.CANCELLED
        assert status.completed_at is not None

    def test_reset_clears_previous_campaign(self, state):
        """Test that reset() clears the previous campaign."""
        state.record(make_result(severity=Severity.CRASH))
        state.finish(CampaignPhase.CRASH_HALTED)
        state.reset("other/endpoint", continuous=True)
        assert not state.crash_found
        assert state.results == ()
        assert state.target == "other/endpoint"
