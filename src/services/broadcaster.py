"""Fan-out of ingestion updates to live subscribers."""

import asyncio
import json
import queue
import threading
from contextlib import suppress
from typing import Any, Protocol, runtime_checkable

from src.utils.logger import StructuredLogger


class ChannelClosed(Exception):
    """Raised when sending to a channel that is no longer open."""


@runtime_checkable
class SubscriberChannel(Protocol):
    """A connection that accepts serialized messages."""

    @property
    def is_open(self) -> bool: ...

    def send(self, message: str) -> None: ...


class QueueChannel:
    """
    Bounded in-process channel bridging the broadcaster to one connection.

    The WebSocket handler drains it with receive(); a consumer that falls
    behind by more than max_pending messages makes send() fail, which the
    broadcaster treats as a dead connection.
    """

    def __init__(self, max_pending: int = 100):
        self._queue: queue.Queue[str] = queue.Queue(maxsize=max_pending)
        self._closed = threading.Event()

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set()

    def send(self, message: str) -> None:
        if self._closed.is_set():
            raise ChannelClosed("Channel is closed")
        try:
            self._queue.put_nowait(message)
        except queue.Full as e:
            raise ChannelClosed("Subscriber is not keeping up") from e

    def receive(self, timeout: float | None = None) -> str | None:
        """Wait up to timeout seconds for the next message; None when nothing arrived."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self._closed.set()


class LoopChannel:
    """
    Channel delivering into an asyncio event loop.

    send() may be called from any thread; the consumer awaits receive() on the
    loop that owns the channel, so no worker thread is held while waiting.
    Pending messages are bounded the same way as QueueChannel.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None, max_pending: int = 100):
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._max_pending = max_pending
        self._pending = 0
        self._lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set()

    def send(self, message: str) -> None:
        if self._closed.is_set():
            raise ChannelClosed("Channel is closed")
        with self._lock:
            if self._pending >= self._max_pending:
                raise ChannelClosed("Subscriber is not keeping up")
            self._pending += 1
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, message)
        except RuntimeError as e:
            raise ChannelClosed("Event loop is closed") from e

    async def receive(self) -> str | None:
        """Wait for the next message; None once the channel is closed."""
        message = await self._queue.get()
        if message is not None:
            with self._lock:
                self._pending -= 1
        return message

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        # Wake a pending receive()
        with suppress(RuntimeError):
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)


class Broadcaster:
    """Thread-safe subscriber registry. Payloads are serialized once per publish."""

    def __init__(self):
        self._subscribers: set[SubscriberChannel] = set()
        self._lock = threading.Lock()
        self.logger = StructuredLogger("Broadcaster")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, channel: SubscriberChannel | None = None) -> SubscriberChannel:
        """
        Register a channel for future publishes.

        Args:
            channel: Channel to register; a new QueueChannel is created if omitted

        Returns:
            The registered channel
        """
        channel = channel if channel is not None else QueueChannel()
        with self._lock:
            self._subscribers.add(channel)
            count = len(self._subscribers)
        self.logger.info("Subscriber connected", context={"subscribers": count})
        return channel

    def unsubscribe(self, channel: SubscriberChannel) -> None:
        """Remove a channel. Unknown channels are ignored."""
        with self._lock:
            removed = channel in self._subscribers
            self._subscribers.discard(channel)
            count = len(self._subscribers)
        if removed:
            self.logger.info("Subscriber disconnected", context={"subscribers": count})

    def publish(self, payload: Any) -> int:
        """
        Send a payload to every open subscriber.

        Channels that are not open or whose send fails are dropped without retry.

        Returns:
            Number of channels the message was delivered to
        """
        message = json.dumps(payload, default=str)
        with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        dead: list[SubscriberChannel] = []
        for channel in targets:
            if not channel.is_open:
                dead.append(channel)
                continue
            try:
                channel.send(message)
                delivered += 1
            except Exception as e:
                self.logger.warning(
                    "Dropping subscriber after failed send",
                    context={"error_type": type(e).__name__},
                )
                dead.append(channel)

        if dead:
            with self._lock:
                self._subscribers.difference_update(dead)

        self.logger.debug(
            "Published update",
            context={"delivered": delivered, "dropped": len(dead), "bytes": len(message)},
        )
        return delivered
