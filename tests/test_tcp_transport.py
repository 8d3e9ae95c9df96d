"""
Tests for the TCP transaction transport.

Tests cover:
- Target entry / endpoint parsing
- Interface token fetch
- Reply status mapping (accepted, declined, remote error, fault)
- Session loss and reply timeouts
- Malformed replies (unknown status, oversized body)
- End-to-end campaign against a reference server
"""
import asyncio

import pytest

from txfuzz.config import settings
from txfuzz.engine.campaign import CampaignController
from txfuzz.engine.crash_classifier import CrashClassifier
from txfuzz.engine.parcel import INT32_MIN, Parcel, obtain_parcels
from txfuzz.engine.payload_encoder import PayloadEncoder
from txfuzz.engine.tcp_transport import (
    TcpSessionProvider,
    decode_fault,
    parse_endpoint,
    parse_target,
)
from txfuzz.exceptions import (
    ConfigurationError,
    ConnectError,
    ReceiveError,
    ReceiveTimeoutError,
    SessionLostError,
    TargetFault,
)
from txfuzz.models import CampaignPhase, Category, Severity, TestCase, TypedValue, ValueKind

from transaction_server import (
    CLOSE,
    HANG,
    STATUS_ACCEPTED,
    STATUS_DECLINED,
    TransactionServer,
    fault,
)

TOKEN = "com.example.ITarget"


class TestParsing:
    def test_parse_endpoint(self):
        """Test host:port parsing."""
        assert parse_endpoint("127.0.0.1:7100") == ("127.0.0.1", 7100)
        assert parse_endpoint("[::1]:80") == ("::1", 80)

    @pytest.mark.parametrize("endpoint", ["localhost", ":80", "host:abc"])
    def test_parse_endpoint_invalid(self, endpoint):
        """Test that malformed endpoints are rejected."""
        with pytest.raises(ConfigurationError):
            parse_endpoint(endpoint)

    def test_parse_target(self):
        """Test identity=host:port parsing."""
        candidate = parse_target("com.example.app = 10.0.0.2:9000")
        assert candidate.identity == "com.example.app"
        assert candidate.endpoint_name == "10.0.0.2:9000"
        assert candidate.full_name == "com.example.app/10.0.0.2:9000"

    def test_parse_target_invalid(self):
        """Test that a target entry without a separator is rejected."""
        with pytest.raises(ConfigurationError):
            parse_target("no-separator")

    def test_invalid_entries_skipped_in_enumeration(self):
        """Test that invalid entries are skipped when listing targets."""
        provider = TcpSessionProvider(targets=["a=127.0.0.1:1", "broken", "b=host:2"])
        assert [c.identity for c in provider.list_candidates()] == ["a", "b"]

    def test_decode_fault(self):
        """Test fault body decoding."""
        assert decode_fault(b"NullPointerException\x00boom") == ("NullPointerException", "boom")
        assert decode_fault(b"") == ("UnknownFault", "")


async def transact(session, code, payload=b""):
    with obtain_parcels() as (data, reply):
        data.set_data(payload)
        accepted = await session.transact(code, data, reply)
        return accepted, reply.marshall()


class TestTcpSession:
    @pytest.mark.asyncio
    async def test_token_and_accepted_reply(self):
        """Test token fetch and an accepted reply."""
        def handler(code, payload):
            return STATUS_ACCEPTED, b"\x2a\x00\x00\x00"

        async with TransactionServer(handler, token="com.example.ITarget") as server:
            provider = TcpSessionProvider(targets=[], transaction_timeout_ms=500)
            session = await provider.connect("app", server.endpoint)
            try:
                assert await session.resolve_identity_token() == "com.example.ITarget"
                assert session.interface_token == "com.example.ITarget"

                accepted, body = await transact(session, 3, b"\x01\x00\x00\x00")
                assert accepted is True
                assert Parcel(body).read_int32() == 42
                assert server.requests[-1][1:] == (3, b"\x01\x00\x00\x00")
            finally:
                await provider.disconnect(session)
            assert not session.is_alive()

    @pytest.mark.asyncio
    async def test_declined_reply(self):
        """Test that a declined reply returns False."""
        async with TransactionServer(lambda code, payload: (STATUS_DECLINED, b"")) as server:
            session = await TcpSessionProvider(targets=[]).connect("app", server.endpoint)
            try:
                accepted, _ = await transact(session, 1)
                assert accepted is False
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_missing_token(self):
        """Test that a declined token request yields no token."""
        async with TransactionServer(token=None) as server:
            session = await TcpSessionProvider(targets=[]).connect("app", server.endpoint)
            try:
                assert await session.resolve_identity_token() is None
            finally:
                await session.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("recoverable", [True, False])
    async def test_fault_replies(self, recoverable):
        """Test that fault replies raise TargetFault."""
        def handler(code, payload):
            return fault("java.lang.IllegalStateException", "bad state", recoverable)

        async with TransactionServer(handler) as server:
            session = await TcpSessionProvider(targets=[]).connect("app", server.endpoint)
            try:
                with pytest.raises(TargetFault) as exc_info:
                    await transact(session, 1)
                assert exc_info.value.kind == "java.lang.IllegalStateException"
                assert exc_info.value.fault_message == "bad state"
                assert exc_info.value.recoverable is recoverable
                assert session.is_alive()
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_peer_close_is_session_lost(self):
        """Test that a peer close is a lost session."""
        async with TransactionServer(lambda code, payload: CLOSE) as server:
            session = await TcpSessionProvider(targets=[]).connect("app", server.endpoint)
            try:
                with pytest.raises(SessionLostError):
                    await transact(session, 1)
                assert not session.is_alive()
                with pytest.raises(SessionLostError):
                    await transact(session, 2)
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_hang_is_receive_timeout(self):
        """Test that no reply raises ReceiveTimeoutError."""
        async with TransactionServer(lambda code, payload: HANG) as server:
            provider = TcpSessionProvider(targets=[], transaction_timeout_ms=100)
            session = await provider.connect("app", server.endpoint)
            try:
                with pytest.raises(ReceiveTimeoutError):
                    await transact(session, 1)
                assert session.is_alive()
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_stale_reply_discarded(self):
        """Test that a late reply is not matched to the next transaction."""
        async def handler(code, payload):
            if code == 1:
                # answered only after the client gave up on it
                await asyncio.sleep(0.3)
            return STATUS_ACCEPTED, payload

        async with TransactionServer(handler) as server:
            provider = TcpSessionProvider(targets=[], transaction_timeout_ms=200)
            session = await provider.connect("app", server.endpoint)
            try:
                with pytest.raises(ReceiveTimeoutError):
                    await transact(session, 1, b"\x01\x00\x00\x00")
                accepted, body = await transact(session, 2, b"\x02\x00\x00\x00")
                assert accepted
                assert body == b"\x02\x00\x00\x00"
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_connect_refused(self):
        """Test that a refused connection is a ConnectError."""
        server = await TransactionServer().start()
        endpoint = server.endpoint
        await server.stop()

        with pytest.raises(ConnectError):
            await TcpSessionProvider(targets=[]).connect("app", endpoint)

    @pytest.mark.asyncio
    async def test_malformed_endpoint_is_connect_error(self):
        """Test that a malformed endpoint is a ConnectError."""
        with pytest.raises(ConnectError):
            await TcpSessionProvider(targets=[]).connect("app", "not-an-endpoint")


class TestMalformedReplies:
    @pytest.mark.asyncio
    async def test_unknown_status_raises_receive_error(self):
        """Test that a reply with an unknown status is a receive error on a live session."""
        async with TransactionServer(lambda code, payload: (9, b"")) as server:
            session = await TcpSessionProvider(targets=[]).connect("app", server.endpoint)
            try:
                with pytest.raises(ReceiveError) as exc_info:
                    await transact(session, 1)
                assert not isinstance(exc_info.value, ReceiveTimeoutError)
                assert session.is_alive()
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_oversized_reply_drops_session(self, monkeypatch):
        """Test that a reply over max_reply_bytes is refused and the session dropped."""
        monkeypatch.setattr(settings, "max_reply_bytes", 48)  # still fits the token reply

        async with TransactionServer(lambda code, payload: (STATUS_ACCEPTED, b"x" * 256)) as server:
            session = await TcpSessionProvider(targets=[]).connect("app", server.endpoint)
            try:
                with pytest.raises(ReceiveError):
                    await transact(session, 1)
                assert not session.is_alive()
            finally:
                await session.close()


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_campaign_halts_when_target_drops_link(self):
        """Test that a campaign halts when the server drops the link."""
        crash_case = TestCase(
            Category.INT32, f"i32={INT32_MIN}", (TypedValue(ValueKind.INT32, INT32_MIN),)
        )
        crash_payload = PayloadEncoder().encode(Parcel(), crash_case, TOKEN).marshall()

        def handler(code, payload):
            if code == 2 and payload == crash_payload:
                return CLOSE
            return STATUS_ACCEPTED, b""

        async with TransactionServer(handler, token=TOKEN) as server:
            controller = CampaignController(
                TcpSessionProvider(targets=[], transaction_timeout_ms=500),
                classifier=CrashClassifier(crash_kinds=[], benign_kinds=[], report_anomalies=False),
                max_transaction_code=3,
                bind_timeout_ms=2000,
                inter_trial_delay_ms=0,
                inter_round_delay_ms=0,
            )

            status = await asyncio.wait_for(
                controller.run_campaign("app", server.endpoint), timeout=30
            )

        assert status.phase == CampaignPhase.CRASH_HALTED
        (result,) = controller.results
        assert result.severity == Severity.CRASH
        assert result.transaction_code == 2
        assert result.input_label == f"i32={INT32_MIN}"
        assert max(code for _, code, _ in server.requests) == 2

    @pytest.mark.asyncio
    async def test_unknown_reply_status_is_anomaly_not_crash(self):
        """Test that a target answering with an unknown status never halts the campaign."""
        async with TransactionServer(lambda code, payload: (9, b"")) as server:
            controller = CampaignController(
                TcpSessionProvider(targets=[], transaction_timeout_ms=500),
                classifier=CrashClassifier(crash_kinds=[], benign_kinds=[], report_anomalies=False),
                max_transaction_code=1,
                bind_timeout_ms=2000,
                inter_trial_delay_ms=0,
                inter_round_delay_ms=0,
            )

            status = await asyncio.wait_for(
                controller.run_campaign("app", server.endpoint), timeout=30
            )

        assert status.phase == CampaignPhase.EXHAUSTED
        assert not status.crash_found
        assert len(controller.results) == controller.corpus.corpus_size()
        assert all(r.severity == Severity.ANOMALY for r in controller.results)
        assert controller.results[0].outcome_label == (
            "Anomaly: MalformedReply - Unknown reply status 9"
        )

    @pytest.mark.asyncio
    async def test_oversized_reply_ends_round_without_crash(self, monkeypatch):
        """Test that an oversized reply is recorded once and ends the round cleanly."""
        monkeypatch.setattr(settings, "max_reply_bytes", 48)  # still fits the token reply

        async with TransactionServer(lambda code, payload: (STATUS_ACCEPTED, b"x" * 256)) as server:
            controller = CampaignController(
                TcpSessionProvider(targets=[], transaction_timeout_ms=500),
                classifier=CrashClassifier(crash_kinds=[], benign_kinds=[], report_anomalies=False),
                max_transaction_code=3,
                bind_timeout_ms=2000,
                inter_trial_delay_ms=0,
                inter_round_delay_ms=0,
            )

            status = await asyncio.wait_for(
                controller.run_campaign("app", server.endpoint), timeout=30
            )

        assert status.phase == CampaignPhase.EXHAUSTED
        assert not status.crash_found
        (result,) = controller.results
        assert result.severity == Severity.ANOMALY
        assert result.transaction_code == 1
        assert len(server.requests) == 1
