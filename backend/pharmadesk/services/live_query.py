"""
Live queries over the document store.

A subscription pairs a topic with a query function. The full result set is
delivered on subscribe and again every time a writer publishes the topic.
Subscribers never receive deltas.

Handles are owned by whoever called ``subscribe`` and must be released with
``unsubscribe()`` (or by using the handle as a context manager). Releasing is
idempotent. A query or listener that fails is logged and its subscription is
closed; there is no automatic retry.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Query = Callable[[], Any]
Listener = Callable[[Any], Any]
ErrorHandler = Callable[[Exception], Any]


def conversations_topic(participant_id: str) -> str:
    return f"conversations:{participant_id}"


def messages_topic(conversation_id: str) -> str:
    return f"messages:{conversation_id}"


class Subscription:
    """Handle for one live query. Call ``unsubscribe`` when done."""

    def __init__(self, hub: "LiveQueryHub", topic: str, query: Query, listener: Listener,
                 on_error: Optional[ErrorHandler] = None):
        self.hub = hub
        self.topic = topic
        self.query = query
        self.listener = listener
        self.on_error = on_error
        self.closed = False
        self.deliveries = 0
        # Serializes deliveries so pushes arrive in emission order
        self._lock = asyncio.Lock()

    @property
    def active(self) -> bool:
        return not self.closed

    def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.hub._remove(self)
        logger.debug("Subscription to %s released", self.topic)

    close = unsubscribe

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()
        return False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.unsubscribe()
        return False

    async def refresh(self) -> None:
        """Re-run the query and push the result to the listener."""
        async with self._lock:
            if self.closed:
                return
            try:
                snapshot = self.query()
                if inspect.isawaitable(snapshot):
                    snapshot = await snapshot
                if self.closed:
                    return
                result = self.listener(snapshot)
                if inspect.isawaitable(result):
                    await result
                self.deliveries += 1
            except Exception as exc:
                logger.error("Live query on %s failed, subscription closed: %s", self.topic, exc)
                self.unsubscribe()
                if self.on_error is not None:
                    try:
                        handled = self.on_error(exc)
                        if inspect.isawaitable(handled):
                            await handled
                    except Exception:
                        logger.exception("Error handler for %s raised", self.topic)


class LiveQueryHub:
    """In-process registry of live queries keyed by topic."""

    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = {}

    async def subscribe(self, topic: str, query: Query, listener: Listener,
                        on_error: Optional[ErrorHandler] = None) -> Subscription:
        subscription = Subscription(self, topic, query, listener, on_error)
        self._subscriptions.setdefault(topic, []).append(subscription)
        await subscription.refresh()
        return subscription

    async def publish(self, *topics: str) -> None:
        """Push fresh snapshots to every subscriber of ``topics``."""
        for topic in topics:
            for subscription in list(self._subscriptions.get(topic, ())):
                await subscription.refresh()

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        if topic is not None:
            return len(self._subscriptions.get(topic, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.topic)
        if not subs:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            return
        if not subs:
            del self._subscriptions[subscription.topic]


live_hub = LiveQueryHub()
