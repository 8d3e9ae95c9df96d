"""
In-memory target session and provider for engine tests.

A behavior callable decides the fate of every transaction:

    def behavior(code: int, payload: bytes, session: FakeSession) -> bool

It returns the acceptance flag or raises (SessionLostError, TargetFault, ...)
to simulate the target's reaction.
"""
import asyncio
from typing import Callable, List, Optional, Set

from txfuzz.engine.corpus_generator import CorpusGenerator
from txfuzz.engine.parcel import Parcel
from txfuzz.engine.payload_encoder import PayloadEncoder
from txfuzz.engine.transport import SessionProvider, TargetSession
from txfuzz.exceptions import ConnectError
from txfuzz.models import Category, TargetCandidate, TestCase

TOKEN = "com.example.IFake"

Behavior = Callable[[int, bytes, "FakeSession"], bool]


def accept_all(code: int, payload: bytes, session: "FakeSession") -> bool:
    return True


def encode_payload(test_case: TestCase, token: Optional[str] = TOKEN) -> bytes:
    parcel = Parcel()
    PayloadEncoder().encode(parcel, test_case, token)
    return parcel.marshall()


def category_payloads(category: Category, token: Optional[str] = TOKEN) -> Set[bytes]:
    return {encode_payload(tc, token) for tc in CorpusGenerator().generate(category)}


class FakeSession(TargetSession):
    def __init__(self, behavior: Behavior = accept_all, token: Optional[str] = TOKEN):
        super().__init__("com.example.fake", "fake-endpoint")
        self.behavior = behavior
        self.token = token
        self.alive = True
        self.close_count = 0
        self.calls: List[tuple] = []
        self.parcels: List[Parcel] = []

    async def transact(self, code: int, data: Parcel, reply: Parcel, flags: int = 0) -> bool:
        payload = data.marshall()
        self.calls.append((code, payload))
        self.parcels.extend((data, reply))
        return self.behavior(code, payload, self)

    def is_alive(self) -> bool:
        return self.alive and self.close_count == 0

    async def fetch_interface_token(self) -> Optional[str]:
        return self.token

    async def close(self) -> None:
        self.close_count += 1

    @property
    def codes(self) -> List[int]:
        return [code for code, _ in self.calls]


class FakeProvider(SessionProvider):
    """
    Args:
        behavior: Behavior for every session handed out
        connect_delay: Seconds connect() sleeps before returning
        fail_connect: Raise ConnectError instead of binding
        on_connect: Hook called with the connect count on each attempt
    """

    def __init__(
        self,
        behavior: Behavior = accept_all,
        candidates: Optional[List[TargetCandidate]] = None,
        connect_delay: float = 0.0,
        fail_connect: bool = False,
        on_connect: Optional[Callable[[int], None]] = None,
        token: Optional[str] = TOKEN,
    ):
        self.behavior = behavior
        self.candidates = candidates or []
        self.connect_delay = connect_delay
        self.fail_connect = fail_connect
        self.on_connect = on_connect
        self.token = token
        self.connect_attempts = 0
        self.sessions: List[FakeSession] = []
        self.disconnected: List[FakeSession] = []

    def list_candidates(self) -> List[TargetCandidate]:
        return list(self.candidates)

    async def connect(self, identity: str, endpoint_name: str) -> FakeSession:
        self.connect_attempts += 1
        if self.on_connect is not None:
            self.on_connect(self.connect_attempts)
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.fail_connect:
            raise ConnectError(f"Cannot bind {identity}/{endpoint_name}")
        session = FakeSession(self.behavior, self.token)
        self.sessions.append(session)
        return session

    async def disconnect(self, session: TargetSession) -> None:
        self.disconnected.append(session)
        await session.close()
