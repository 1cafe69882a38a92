"""
Request Bus — single process-wide channel for capability requests and
notification events.

Behavioral Contract:
- emit() never blocks and never awaits a subscriber
- Every subscription receives each matching message exactly once, in emission order
- Subscriptions with different predicates never see each other's messages
- The bus holds no message state of its own beyond per-subscriber FIFOs
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Type

from capability_bus.models.messages import BusMessage

_logger = logging.getLogger(__name__)

MessagePredicate = Callable[[BusMessage], bool]


class BusClosedError(RuntimeError):
    """Raised when emitting on a bus that has been closed."""
    pass


_CLOSE = object()


class Subscription:
    """
    An unbounded FIFO of messages matching one predicate.

    Consume with ``async for message in subscription``. A message counts as
    processed once the consumer asks for the next one (or the iteration ends),
    which is what RequestBus.drain() waits for.
    """

    def __init__(self, bus: "RequestBus", predicate: MessagePredicate, name: str):
        self._bus = bus
        self.predicate = predicate
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._in_flight = False
        self.closed = False

    def matches(self, message: BusMessage) -> bool:
        return self.predicate(message)

    def _deliver(self, message: BusMessage) -> None:
        self._queue.put_nowait(message)

    def _finish_in_flight(self) -> None:
        if self._in_flight:
            self._in_flight = False
            self._queue.task_done()

    @property
    def pending(self) -> int:
        """Messages delivered but not yet handed to the consumer."""
        return self._queue.qsize()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> BusMessage:
        self._finish_in_flight()
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        message = await self._queue.get()
        if message is _CLOSE:
            self._queue.task_done()
            raise StopAsyncIteration
        self._in_flight = True
        return message

    async def join(self) -> None:
        await self._queue.join()

    def close(self) -> None:
        """Stop delivery. Messages already queued are still handed out."""
        if self.closed:
            return
        self.closed = True
        self._bus.unsubscribe(self)
        self._queue.put_nowait(_CLOSE)


class RequestBus:
    """Typed in-process publish/subscribe channel."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._closed = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions)

    def subscribe(
        self, predicate: MessagePredicate, name: Optional[str] = None
    ) -> Subscription:
        """Register a subscriber for every message matching ``predicate``."""
        if self._closed:
            raise BusClosedError("Cannot subscribe to a closed bus")
        subscription = Subscription(
            self, predicate, name or f"subscription_{len(self._subscriptions) + 1}"
        )
        self._subscriptions.append(subscription)
        return subscription

    def subscribe_to(
        self, message_type: Type[BusMessage], name: Optional[str] = None
    ) -> Subscription:
        """Subscribe to every message of a given type."""
        return self.subscribe(
            lambda message: isinstance(message, message_type),
            name=name or message_type.__name__,
        )

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the loop that owns the bus, for emit_threadsafe()."""
        self._loop = loop

    def emit(self, message: BusMessage) -> int:
        """
        Publish a message. Fire-and-forget.

        Returns the number of subscriptions the message was delivered to.
        Must be called from the loop that owns the bus.
        """
        if self._closed:
            raise BusClosedError(
                f"Cannot emit {type(message).__name__}: bus is closed"
            )

        delivered = 0
        for subscription in self._subscriptions:
            if subscription.matches(message):
                subscription._deliver(message)
                delivered += 1

        if delivered == 0:
            _logger.debug(
                "No subscriber for %s on channel=%s; dropped",
                type(message).__name__, message.channel.value,
            )
        return delivered

    def emit_threadsafe(self, message: BusMessage) -> None:
        """Hop back onto the owning loop before publishing."""
        if self._loop is None:
            raise RuntimeError("emit_threadsafe() requires bind_loop() first")
        self._loop.call_soon_threadsafe(self.emit, message)

    async def drain(self) -> None:
        """Wait until every subscriber has processed everything emitted so far."""
        # A subscriber reacting to one message may emit another, so repeat
        # until a full pass finds every queue settled.
        while True:
            subscriptions = list(self._subscriptions)
            await asyncio.gather(*(s.join() for s in subscriptions))
            if all(s.pending == 0 and not s._in_flight for s in self._subscriptions):
                return

    def close(self) -> None:
        """Close the bus and every subscription."""
        self._closed = True
        for subscription in list(self._subscriptions):
            subscription.close()
