"""
Commerce SDK boundary - The on-device platform purchase SDK as seen by the client.

NO DICTIONARIES - All data uses strongly typed models.

SDK callbacks are bridged into an EventChannel; the purchase controller
consumes the channel instead of registering callbacks on a global module.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType
from typing import Protocol

from app.exceptions import CommerceError
from app.models.domain import PurchaseClaim


@dataclass(frozen=True)
class PurchaseUpdated:
    """The SDK reports a completed purchase carrying a proof."""

    claim: PurchaseClaim


@dataclass(frozen=True)
class PurchaseFailed:
    """The SDK reports a purchase error or cancellation."""

    code: str
    message: str = ""
    product_id: str | None = None

    @property
    def is_user_cancelled(self) -> bool:
        return self.code == CommerceError.USER_CANCELLED


CommerceEvent = PurchaseUpdated | PurchaseFailed


class EventChannel:
    """
    Single-consumer async channel for commerce events.

    publish() is safe to call from SDK callbacks running on the loop;
    iteration ends after close().
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[CommerceEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: CommerceEvent) -> None:
        if self._closed:
            raise RuntimeError("Event channel is closed")
        self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[CommerceEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


class CommerceConnection(Protocol):
    """
    Handle to the platform commerce SDK.

    All operations may raise CommerceError. The connection must be
    connected before use and closed when the screen goes away.
    """

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def request_purchase(self, product_id: str) -> None:
        """Open the platform purchase UI. The result arrives as an event."""
        ...

    async def finalize(self, claim: PurchaseClaim) -> None:
        """Acknowledge the transaction so the platform stops redelivering it."""
        ...

    async def list_held_purchases(self) -> list[PurchaseClaim]:
        """Purchases the platform currently holds for this account."""
        ...

    def events(self) -> EventChannel: ...


class connected:
    """
    Async context manager that connects and always closes a commerce connection.

    Usage:
        async with connected(connection) as conn:
            await conn.request_purchase("issue-42")
    """

    def __init__(self, connection: CommerceConnection) -> None:
        self.connection = connection

    async def __aenter__(self) -> CommerceConnection:
        await self.connection.connect()
        return self.connection

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.connection.close()
