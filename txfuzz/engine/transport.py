"""
Transport Abstraction Layer

Narrow interfaces the campaign engine consumes:
- TargetSession: one live, exclusively owned connection to a target
- SessionProvider: target enumeration plus connect / disconnect

Concrete transports (see tcp_transport.py) implement these; the engine never
depends on a specific wire.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

import structlog

from txfuzz.engine.parcel import Parcel
from txfuzz.models import TargetCandidate

logger = structlog.get_logger()


class TargetSession(ABC):
    """
    Abstract live session to one target.

    The session carries an optional interface token that the payload
    encoder writes ahead of every payload. Token resolution is best effort:
    a session without one is still fuzzed.
    """

    def __init__(self, identity: str, endpoint_name: str):
        """
        Initialize session.

        Args:
            identity: Target identity (package, host alias, ...)
            endpoint_name: Endpoint within the target (service name, address)
        """
        self.identity = identity
        self.endpoint_name = endpoint_name
        self.interface_token: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.identity}/{self.endpoint_name}"

    @abstractmethod
    async def transact(self, code: int, data: Parcel, reply: Parcel, flags: int = 0) -> bool:
        """
        Submit one transaction.

        Args:
            code: Transaction code
            data: Encoded request parcel
            reply: Parcel that receives the reply body
            flags: Transport flags

        Returns:
            The target's acceptance flag. False is an ordinary decline,
            never a crash signal.

        Raises:
            SessionLostError: The session died
            ReceiveTimeoutError: No reply within the transaction timeout
            TargetFault: The target reported a structured failure
        """
        pass

    @abstractmethod
    def is_alive(self) -> bool:
        """Liveness probe; False once the session is known to be dead."""
        pass

    async def fetch_interface_token(self) -> Optional[str]:
        """Ask the target for its interface token. Default: none."""
        return None

    async def resolve_identity_token(self) -> Optional[str]:
        """Fetch and cache the interface token, tolerating failure."""
        try:
            self.interface_token = await self.fetch_interface_token()
        except Exception as exc:
            logger.warning(
                "interface_token_unavailable",
                target=self.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self.interface_token = None
        return self.interface_token

    @abstractmethod
    async def close(self) -> None:
        """Release the session's resources."""
        pass


class SessionProvider(ABC):
    """Enumerates targets and binds sessions to them."""

    @abstractmethod
    def list_candidates(self) -> List[TargetCandidate]:
        """List fuzzable targets. May be empty; no ordering guarantee."""
        pass

    @abstractmethod
    async def connect(self, identity: str, endpoint_name: str) -> TargetSession:
        """
        Bind a session.

        Raises:
            ConnectError: The target could not be bound
        """
        pass

    async def disconnect(self, session: TargetSession) -> None:
        await session.close()
