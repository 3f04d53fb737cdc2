"""Abstract client connection speaking MessagePack frames."""

from abc import ABC, abstractmethod
from typing import Any

from mathhack.messaging.encoder import decode, encode


class ConnectionProtocol(ABC):
    """
    Interface for one client connection.

    Session logic only talks to this interface, so it can be exercised with
    in-memory connections in tests.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique identifier for this connection."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        """
        Receive and decode one frame.

        Raises DecodeError when the frame is malformed; the connection stays usable.
        """
        return decode(await self.receive_bytes())
