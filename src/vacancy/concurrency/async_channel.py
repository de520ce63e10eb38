"""
Async Channel used as an entity mailbox.

Wraps asyncio.Queue with send/receive operations and an explicit closed state.
Each resource drains one channel from a single task, which is what gives its
requests a total order.
"""
import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class ChannelClosedError(Exception):
    """Raised when trying to send to a closed channel."""

    pass


class AsyncChannel(Generic[T]):
    """
    An unbounded asynchronous channel for single-consumer mailboxes.

    Any number of tasks may send; exactly one task is expected to receive.
    Messages are delivered in send order.

    Example:
        mailbox = AsyncChannel[str]()

        # Producer side, fire-and-forget
        mailbox.send_nowait("vacate")

        # Consumer side
        message = await mailbox.receive()
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[T] = asyncio.Queue()
        self._closed: bool = False

    async def send(self, item: T) -> None:
        """
        Send an item to the channel.

        Raises:
            ChannelClosedError: If the channel is closed.
        """
        if self._closed:
            raise ChannelClosedError("Cannot send to closed channel")
        await self._queue.put(item)

    def send_nowait(self, item: T) -> None:
        """
        Send an item to the channel without waiting.

        Raises:
            ChannelClosedError: If the channel is closed.
        """
        if self._closed:
            raise ChannelClosedError("Cannot send to closed channel")
        self._queue.put_nowait(item)

    async def receive(self) -> T:
        """Receive the next item, waiting until one is available."""
        return await self._queue.get()

    def close(self) -> None:
        """
        Close the channel.

        No more items can be sent after closing, but pending items
        can still be received or drained.
        """
        self._closed = True

    def drain(self) -> list[T]:
        """Remove and return every pending item without waiting."""
        items: list[T] = []
        while not self._queue.empty():
            items.append(self._queue.get_nowait())
        return items

    @property
    def closed(self) -> bool:
        """Check if the channel is closed."""
        return self._closed

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"AsyncChannel({state}, pending={self._queue.qsize()})"


__all__ = [
    "AsyncChannel",
    "ChannelClosedError",
]
