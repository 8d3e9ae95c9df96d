"""
TCP Transaction Transport - framed request/reply over asyncio streams.

Wire format (big-endian headers, payload is the raw parcel):

    request:  txn_id:u32  code:u32  flags:u32  length:u32  payload
    reply:    txn_id:u32  status:u8  length:u32  body

Reply status:
    0  accepted        body is the reply parcel
    1  declined        body is the reply parcel, transact() returns False
    2  remote error    body is b"kind\\0message", recoverable rejection
    3  raised fault    body is b"kind\\0message"

The interface token is fetched with the reserved INTERFACE_TRANSACTION code
right after connecting; the reply parcel holds it as a string.

A reply carrying an older txn_id belongs to a transaction that already timed
out and is discarded. EOF or a reset while waiting means the target is gone.

A reply with an unknown status or a body over max_reply_bytes raises
ReceiveError. An oversized body is left unread, so the session is dropped.
"""
from __future__ import annotations

import asyncio
import struct
from typing import List, Optional, Tuple

import structlog

from txfuzz.config import settings
from txfuzz.engine.parcel import Parcel, obtain_parcels
from txfuzz.engine.transport import SessionProvider, TargetSession
from txfuzz.exceptions import (
    ConfigurationError,
    ConnectError,
    ConnectionTimeoutError,
    ReceiveError,
    ReceiveTimeoutError,
    SessionLostError,
    TargetFault,
)
from txfuzz.models import TargetCandidate

logger = structlog.get_logger()

INTERFACE_TRANSACTION = 0x5F4E5446  # '_NTF'

REQUEST_HEADER = struct.Struct(">IIII")
REPLY_HEADER = struct.Struct(">IBI")

STATUS_ACCEPTED = 0
STATUS_DECLINED = 1
STATUS_REMOTE_ERROR = 2
STATUS_FAULT = 3


def parse_endpoint(endpoint_name: str) -> Tuple[str, int]:
    """Split "host:port" into its parts."""
    host, sep, port = endpoint_name.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ConfigurationError(
            f"Invalid endpoint '{endpoint_name}', expected host:port",
            details={"endpoint": endpoint_name},
        )
    return host.strip("[]"), int(port)


def parse_target(entry: str) -> TargetCandidate:
    """Parse an "identity=host:port" target entry."""
    identity, sep, endpoint = entry.partition("=")
    if not sep or not identity.strip():
        raise ConfigurationError(
            f"Invalid target entry '{entry}', expected identity=host:port",
            details={"entry": entry},
        )
    endpoint = endpoint.strip()
    parse_endpoint(endpoint)
    return TargetCandidate(identity=identity.strip(), endpoint_name=endpoint)


def decode_fault(body: bytes) -> Tuple[str, str]:
    kind, _, message = body.partition(b"\x00")
    return (
        kind.decode("utf-8", errors="replace") or "UnknownFault",
        message.decode("utf-8", errors="replace"),
    )


class TcpTargetSession(TargetSession):
    """
    Persistent TCP session to one transaction endpoint.

    Transactions are strictly sequential: one request in flight, matched to
    its reply by txn_id.
    """

    def __init__(
        self,
        identity: str,
        endpoint_name: str,
        timeout_ms: Optional[int] = None,
    ):
        super().__init__(identity, endpoint_name)
        self.host, self.port = parse_endpoint(endpoint_name)
        self.timeout_sec = (timeout_ms or settings.transaction_timeout_ms) / 1000.0

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._connected = False
        self._next_txn_id = 1

    async def open(self, connect_timeout_sec: float) -> None:
        """Establish the TCP connection."""
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=connect_timeout_sec,
            )
        except asyncio.TimeoutError:
            raise ConnectionTimeoutError(
                f"Connection timeout to {self.host}:{self.port}",
                details={"timeout_sec": connect_timeout_sec},
            )
        except OSError as e:
            raise ConnectError(
                f"Failed to connect to {self.host}:{self.port}: {e}",
                details={"error": str(e)},
            )
        self._connected = True
        logger.debug("tcp_session_connected", host=self.host, port=self.port)

    def is_alive(self) -> bool:
        if not self._connected or self._writer is None or self._reader is None:
            return False
        return not self._writer.is_closing() and not self._reader.at_eof()

    def _lost(self, reason: str) -> SessionLostError:
        self._connected = False
        return SessionLostError(
            f"Session to {self.host}:{self.port} lost: {reason}",
            details={"target": self.name},
        )

    async def _read_reply(self, txn_id: int) -> Tuple[int, bytes]:
        assert self._reader is not None
        while True:
            header = await self._reader.readexactly(REPLY_HEADER.size)
            reply_id, status, length = REPLY_HEADER.unpack(header)
            if length > settings.max_reply_bytes:
                # the unread body leaves the stream out of step
                self._connected = False
                raise ReceiveError(
                    f"Reply of {length} bytes exceeds max_reply_bytes",
                    details={"length": length, "limit": settings.max_reply_bytes},
                )
            body = await self._reader.readexactly(length)
            if reply_id == txn_id:
                return status, body
            logger.debug("stale_reply_discarded", txn_id=reply_id, expected=txn_id)

    async def transact(self, code: int, data: Parcel, reply: Parcel, flags: int = 0) -> bool:
        if not self.is_alive():
            raise self._lost("not connected")
        assert self._writer is not None

        txn_id = self._next_txn_id
        self._next_txn_id = (self._next_txn_id + 1) & 0xFFFFFFFF or 1
        payload = data.marshall()

        try:
            self._writer.write(REQUEST_HEADER.pack(txn_id, code, flags, len(payload)) + payload)
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise self._lost(f"send failed: {e}")

        try:
            status, body = await asyncio.wait_for(self._read_reply(txn_id), timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            raise ReceiveTimeoutError(
                f"No reply from {self.host}:{self.port} for code {code}",
                details={"code": code, "timeout_sec": self.timeout_sec},
            )
        except asyncio.IncompleteReadError:
            raise self._lost("connection closed by peer")
        except (ConnectionError, OSError) as e:
            raise self._lost(str(e))

        if status in (STATUS_ACCEPTED, STATUS_DECLINED):
            reply.set_data(body)
            return status == STATUS_ACCEPTED
        if status in (STATUS_REMOTE_ERROR, STATUS_FAULT):
            kind, message = decode_fault(body)
            raise TargetFault(kind, message, recoverable=status == STATUS_REMOTE_ERROR)
        raise ReceiveError(
            f"Unknown reply status {status}",
            details={"status": status, "code": code},
        )

    async def fetch_interface_token(self) -> Optional[str]:
        with obtain_parcels() as (data, reply):
            if not await self.transact(INTERFACE_TRANSACTION, data, reply):
                return None
            return reply.read_string()

    async def close(self) -> None:
        self._connected = False
        if self._writer:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except Exception as e:
                logger.warning(
                    "tcp_session_close_failed",
                    host=self.host,
                    port=self.port,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            self._writer = None
            self._reader = None


class TcpSessionProvider(SessionProvider):
    """Provides TCP sessions to targets listed in settings.targets."""

    def __init__(
        self,
        targets: Optional[List[str]] = None,
        connect_timeout_ms: Optional[int] = None,
        transaction_timeout_ms: Optional[int] = None,
    ):
        self.targets = list(settings.targets if targets is None else targets)
        self.connect_timeout_sec = (connect_timeout_ms or settings.bind_timeout_ms) / 1000.0
        self.transaction_timeout_ms = transaction_timeout_ms

    def list_candidates(self) -> List[TargetCandidate]:
        candidates = []
        for entry in self.targets:
            try:
                candidates.append(parse_target(entry))
            except ConfigurationError as exc:
                logger.warning("invalid_target_entry", entry=entry, error=exc.message)
        logger.debug("targets_enumerated", count=len(candidates))
        return candidates

    async def connect(self, identity: str, endpoint_name: str) -> TcpTargetSession:
        try:
            session = TcpTargetSession(identity, endpoint_name, self.transaction_timeout_ms)
        except ConfigurationError as exc:
            raise ConnectError(exc.message, details=exc.details)
        await session.open(self.connect_timeout_sec)
        return session
