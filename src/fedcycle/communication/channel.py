"""Signalling channel abstraction for the duplex transport.

A channel carries typed messages in both directions over one long-lived
connection. Inbound messages are broadcast to every open subscription;
each pending protocol step owns a subscription filtered to the message it
is waiting for, so one step never consumes another step's reply.
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional
import asyncio
import json
import logging

from fedcycle.communication.message import Message

MessageFilter = Callable[[Message], bool]


class Subscription:
    """Filtered view over a channel's inbound stream.

    Messages rejected by the filter are dropped for this subscription
    only; other subscriptions still see them.
    """

    def __init__(self, channel: 'SignallingChannel', message_filter: Optional[MessageFilter] = None):
        self._channel = channel
        self._filter = message_filter
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def offer(self, message: Message) -> bool:
        """Queue ``message`` if it passes the filter.

        Returns:
            True if the message was queued
        """
        if self.closed:
            return False
        if self._filter is not None and not self._filter(message):
            return False
        self._queue.put_nowait(message)
        return True

    async def get(self, timeout: Optional[float] = None) -> Message:
        """Wait for the next matching message.

        Raises:
            asyncio.TimeoutError: If nothing matched within ``timeout``
        """
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def close(self) -> None:
        """Stop receiving messages"""
        self.closed = True
        self._channel.unsubscribe(self)

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SignallingChannel(ABC):
    """Abstract base class for signalling channels.

    Subclasses implement ``send`` for the outbound direction and call
    ``deliver`` for every inbound message.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("signalling_channel")
        self._subscriptions: List[Subscription] = []

    @abstractmethod
    async def send(self, message: Message) -> None:
        """Send a message to the coordinator.

        Raises:
            ConnectionError: If the message could not be handed to the
                connection
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the channel"""

    def subscribe(self, message_filter: Optional[MessageFilter] = None) -> Subscription:
        """Open a subscription over the inbound stream.

        Args:
            message_filter: Predicate selecting messages for this subscriber

        Returns:
            New subscription, receiving messages delivered from now on
        """
        subscription = Subscription(self, message_filter)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def deliver(self, message: Message) -> int:
        """Broadcast an inbound message to all subscriptions.

        Returns:
            Number of subscriptions that accepted the message
        """
        accepted = 0
        for subscription in list(self._subscriptions):
            if subscription.offer(message):
                accepted += 1

        self.logger.debug(
            f"Received {message.msg_type.value} ({accepted} subscriber(s))"
        )
        return accepted

    def deliver_raw(self, raw: str) -> int:
        """Decode a JSON frame and broadcast it.

        Frames that are not valid messages are logged and dropped.
        """
        try:
            message = Message.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Dropping malformed frame: {e}")
            return 0
        return self.deliver(message)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)


class InMemorySignallingChannel(SignallingChannel):
    """In-memory signalling channel for simulation and testing.

    Outbound messages are recorded in ``sent``. If a responder is given it
    is called with every outbound message and its replies are delivered
    back on the inbound stream.
    """

    def __init__(
        self,
        responder: Optional[Callable[[Message], Iterable[Message]]] = None,
        logger: Optional[logging.Logger] = None
    ):
        super().__init__(logger)
        self.responder = responder
        self.sent: List[Message] = []
        self._running = True

    async def send(self, message: Message) -> None:
        if not self._running:
            raise ConnectionError("Channel is closed")

        self.sent.append(message)
        self.logger.debug(f"Sent {message.msg_type.value}")

        if self.responder is not None:
            for reply in self.responder(message) or ():
                # Replies travel as JSON like they would on a real socket
                self.deliver_raw(json.dumps(reply.to_dict()))

    async def close(self) -> None:
        self._running = False
        for subscription in list(self._subscriptions):
            subscription.close()
        self.logger.debug("Channel closed")

    def sent_of_type(self, msg_type) -> List[Message]:
        """All sent messages of a given type"""
        return [m for m in self.sent if m.msg_type == msg_type]
