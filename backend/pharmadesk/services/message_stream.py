"""
Per-consumer message stream for one conversation at a time.

Every push carries the complete ordered message list. Messages the operator
sends are shown immediately as pending local entries with a temporary id and
folded into the authoritative list by ``reconcile`` once a push contains them.
"""
import inspect
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..models.base import generate_uuid
from .live_query import LiveQueryHub, Subscription, live_hub, messages_topic
from .messaging import MessageView, messages_query, send_message

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"

UpdateCallback = Callable[[List[MessageView]], Any]


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{generate_uuid()}"


def _sort_key(message: MessageView):
    # Pending entries without a timestamp sort last
    return (message.timestamp is None, message.timestamp or datetime.min)


def reconcile(pending: Iterable[MessageView], authoritative: Iterable[MessageView]) -> List[MessageView]:
    """
    Merge local pending messages into the server's list.

    A pending entry is dropped once the server list contains it, matched
    either by the temporary id echoed back as ``client_id`` or by the server
    id recorded when the send was acknowledged. The result is ordered by
    timestamp, and applying it again to its own output changes nothing.
    """
    server = list(authoritative)
    server_ids = {m.id for m in server}
    echoed = {m.client_id for m in server if m.client_id}

    survivors = [
        m for m in pending
        if m.id not in echoed
        and m.id not in server_ids
        and (m.server_id is None or m.server_id not in server_ids)
    ]
    # sorted() is stable: server order is kept for equal timestamps
    return sorted(server + survivors, key=_sort_key)


class MessageStream:
    """
    Owns at most one live message subscription.

    ``subscribe`` releases the previous subscription before opening a new one,
    so a consumer that switches conversations never receives stale pushes.
    """

    def __init__(self, hub: Optional[LiveQueryHub] = None, query_factory=None):
        self.hub = hub or live_hub
        self.query_factory = query_factory or messages_query
        self.conversation_id: Optional[str] = None
        self.messages: List[MessageView] = []
        self.pending: List[MessageView] = []
        self._subscription: Optional[Subscription] = None
        self._on_update: Optional[UpdateCallback] = None

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def subscribe(self, conversation_id: str, on_update: Optional[UpdateCallback] = None) -> Subscription:
        self.unsubscribe()
        self.conversation_id = conversation_id
        self.messages = []
        self.pending = []
        self._on_update = on_update
        self._subscription = await self.hub.subscribe(
            messages_topic(conversation_id),
            self.query_factory(conversation_id),
            self._on_push,
            on_error=self._on_error,
        )
        return self._subscription

    def unsubscribe(self) -> None:
        """
        Release the current subscription and forget the selected conversation.
        Safe to call repeatedly.
        """
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.unsubscribe()
        # Sends need a fresh select after this
        self.conversation_id = None
        self.messages = []
        self.pending = []

    def _on_error(self, exc: Exception) -> None:
        logger.error("Message subscription for conversation %s stopped: %s", self.conversation_id, exc)
        self._subscription = None

    async def _on_push(self, authoritative: List[MessageView]) -> None:
        self.messages = reconcile(self.pending, authoritative)
        self.pending = [m for m in self.messages if m.pending]
        await self._emit()

    async def _emit(self) -> None:
        if self._on_update is None:
            return
        result = self._on_update(list(self.messages))
        if inspect.isawaitable(result):
            await result

    def append_pending(self, sender_id: str, text: str, conversation_id: Optional[str] = None,
                       temp_id: Optional[str] = None) -> MessageView:
        """Show a locally-constructed message before the server confirms it."""
        message = MessageView(
            id=temp_id or new_temp_id(),
            conversation_id=conversation_id or self.conversation_id or "",
            sender_id=sender_id,
            text=text,
            timestamp=datetime.utcnow(),
            pending=True,
        )
        self.pending.append(message)
        self.messages = reconcile(self.pending, [m for m in self.messages if not m.pending])
        return message

    def acknowledge(self, temp_id: str, server_id: str) -> None:
        """Record the server id for a pending message once its write succeeds."""
        for index, message in enumerate(self.pending):
            if message.id == temp_id:
                self.pending[index] = message.model_copy(update={"server_id": server_id})
        self.messages = [
            m.model_copy(update={"server_id": server_id}) if m.id == temp_id else m
            for m in self.messages
        ]

    def discard_pending(self, temp_id: str) -> None:
        self.pending = [m for m in self.pending if m.id != temp_id]
        self.messages = [m for m in self.messages if m.id != temp_id]

    async def send(self, db: Session, conversation_id: Optional[str], sender_id: str, text: str,
                   client_id: Optional[str] = None) -> MessageView:
        """
        Optimistically append, write through, and reconcile.

        Returns the persisted message. On failure the pending entry is removed
        and the error propagates to the caller.
        """
        conversation_id = conversation_id or self.conversation_id
        if not conversation_id:
            raise ValueError("No conversation selected")
        local = self.append_pending(sender_id, text, conversation_id, temp_id=client_id)
        await self._emit()
        try:
            message = await send_message(
                db, conversation_id, sender_id, text, client_id=local.id, hub=self.hub,
            )
        except Exception:
            self.discard_pending(local.id)
            await self._emit()
            raise
        self.acknowledge(local.id, message.id)
        return MessageView.model_validate(message)

    async def refetch(self) -> List[MessageView]:
        """Manually re-run the query, e.g. when a push is overdue."""
        if self._subscription is None:
            return self.messages
        await self._subscription.refresh()
        return self.messages
