"""Message bus: a shareable sending handle and a single routing task."""

from __future__ import annotations

import asyncio
import logging
import threading

from minikernel.message import DeliveryStatus, Message, MessageResult

PLUGIN_CHANNEL_CAPACITY = 100

_log = logging.getLogger(__name__)


class MessageBusClosedError(RuntimeError):
    """Raised when sending to a bus whose router has stopped."""


class _BusState:
    def __init__(self, buffer_size: int) -> None:
        self.queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=buffer_size)
        self.plugin_channels: dict[str, asyncio.Queue[Message]] = {}
        self.topic_subscriptions: dict[str, set[str]] = {}
        self.shutdown = asyncio.Event()
        self.closed = False
        self.lock = threading.Lock()


class MessageBusHandle:
    """Sends messages and manages plugin channels and topic subscriptions.

    Copies of a handle share the same bus.
    """

    def __init__(self, state: _BusState) -> None:
        self._state = state

    def registered_plugins(self) -> list[str]:
        """Return the names of plugins that have a channel."""
        with self._state.lock:
            return list(self._state.plugin_channels)

    def register_plugin(self, plugin_id: str) -> asyncio.Queue[Message]:
        """Create the plugin's inbox, replacing any earlier one, and return it."""
        inbox: asyncio.Queue[Message] = asyncio.Queue(maxsize=PLUGIN_CHANNEL_CAPACITY)
        with self._state.lock:
            self._state.plugin_channels[plugin_id] = inbox
        return inbox

    def unregister_plugin(self, plugin_id: str) -> None:
        """Drop the plugin's channel and all of its subscriptions."""
        with self._state.lock:
            self._state.plugin_channels.pop(plugin_id, None)
            subscriptions = self._state.topic_subscriptions
            for subscribers in subscriptions.values():
                subscribers.discard(plugin_id)
            for topic in [t for t, subs in subscriptions.items() if not subs]:
                del subscriptions[topic]

    def subscribe_topic(self, plugin_id: str, topic: str) -> bool:
        """Subscribe a plugin; return False if it was already subscribed."""
        with self._state.lock:
            subscribers = self._state.topic_subscriptions.setdefault(topic, set())
            if plugin_id in subscribers:
                return False
            subscribers.add(plugin_id)
            return True

    def unsubscribe_topic(self, plugin_id: str, topic: str) -> bool:
        """Unsubscribe a plugin; return False if it was not subscribed."""
        with self._state.lock:
            subscriptions = self._state.topic_subscriptions
            subscribers = subscriptions.get(topic)
            if subscribers is None:
                return False
            removed = plugin_id in subscribers
            subscribers.discard(plugin_id)
            if not subscribers:
                del subscriptions[topic]
            return removed

    def get_topic_subscribers(self, topic: str) -> list[str]:
        with self._state.lock:
            return sorted(self._state.topic_subscriptions.get(topic, ()))

    async def send_message(self, message: Message) -> None:
        """Queue a message for routing."""
        if self._state.closed:
            raise MessageBusClosedError("message bus is closed")
        await self._state.queue.put(message)

    async def shutdown(self) -> None:
        """Ask the router to stop."""
        self._state.shutdown.set()


class MessageRouter:
    """Receives queued messages and delivers them to plugin inboxes."""

    def __init__(self, state: _BusState) -> None:
        self._state = state
        self._started = False

    async def run(self) -> None:
        """Route messages until shutdown is requested; may be run only once."""
        if self._started:
            raise RuntimeError("message router has already been run")
        self._started = True
        state = self._state
        _log.info("message router started")
        stop = asyncio.ensure_future(state.shutdown.wait())
        get: asyncio.Future[Message] | None = None
        try:
            while True:
                get = asyncio.ensure_future(state.queue.get())
                done, _ = await asyncio.wait(
                    {get, stop}, return_when=asyncio.FIRST_COMPLETED
                )
                if get in done:
                    message = get.result()
                    if message.is_topic_message():
                        _log.debug(
                            "topic message: from=%s, topic=%s",
                            message.from_plugin,
                            message.topic,
                        )
                    else:
                        _log.debug(
                            "direct message: from=%s, to=%s",
                            message.from_plugin,
                            message.to,
                        )
                    self._report(await self.route_message(message))
                else:
                    get.cancel()
                if stop in done:
                    _log.info("shutdown signal received, stopping message routing")
                    break
        finally:
            stop.cancel()
            if get is not None and not get.done():
                get.cancel()
            state.closed = True
        _log.info("message router stopped")

    async def route_message(self, message: Message) -> MessageResult:
        """Deliver one message to its recipient or topic subscribers."""
        if message.is_topic_message():
            return await self._route_topic_message(message)
        return await self._route_direct_message(message)

    @staticmethod
    def _report(result: MessageResult) -> None:
        if result.status is DeliveryStatus.SUCCESS:
            _log.debug("message routed")
        elif result.status is DeliveryStatus.PLUGIN_NOT_FOUND:
            _log.warning("target not found: %s", result.detail)
        else:
            _log.error("message routing failed: %s", result.detail)

    async def _route_direct_message(self, message: Message) -> MessageResult:
        with self._state.lock:
            inbox = self._state.plugin_channels.get(message.to)
        if inbox is None:
            return MessageResult.plugin_not_found(message.to)
        await inbox.put(message)
        return MessageResult.success()

    async def _route_topic_message(self, message: Message) -> MessageResult:
        topic = message.topic
        with self._state.lock:
            subscribers = list(self._state.topic_subscriptions.get(topic, ()))
            inboxes = [
                self._state.plugin_channels[name]
                for name in subscribers
                if name in self._state.plugin_channels
            ]
        if not subscribers:
            return MessageResult.plugin_not_found(f"topic '{topic}' has no subscribers")

        for inbox in inboxes:
            await inbox.put(message)

        delivered = len(inboxes)
        if delivered > 0:
            return MessageResult.success()
        missing = len(subscribers) - delivered
        return MessageResult.failed(f"delivery failed for all subscribers ({missing})")


def create_message_bus(buffer_size: int) -> tuple[MessageBusHandle, MessageRouter]:
    """Create a bus whose main queue holds up to buffer_size messages."""
    if buffer_size < 1:
        raise ValueError("buffer size must be at least 1")
    state = _BusState(buffer_size)
    return MessageBusHandle(state), MessageRouter(state)