"""
Conversation list for the signed-in operator.

Pushes from the live query replace the whole list. Local optimistic state
(a conversation created a moment ago) is applied with ``upsert`` ahead of the
next push. Patient display names are attached by a best-effort background
pass that never delays delivery of the list itself.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from .live_query import LiveQueryHub, Subscription, conversations_topic, live_hub
from .messaging import ConversationView, conversations_query, patient_display_name

logger = logging.getLogger(__name__)

NameLookup = Callable[[str], Any]


class ConversationStore:
    def __init__(
        self,
        operator_id: str,
        hub: Optional[LiveQueryHub] = None,
        name_lookup: Optional[NameLookup] = None,
        on_change: Optional[Callable[[List[ConversationView]], Any]] = None,
        query_factory=None,
    ):
        self.operator_id = operator_id
        self.hub = hub or live_hub
        self.name_lookup = name_lookup or patient_display_name
        self.on_change = on_change
        self.query_factory = query_factory or conversations_query
        self.conversations: List[ConversationView] = []
        self.loading = True
        self._subscription: Optional[Subscription] = None
        self._enrichment: Optional[asyncio.Task] = None

    # ── subscription ────────────────────────────────────────────────────────

    async def subscribe(self, operator_id: Optional[str] = None) -> Subscription:
        """Start (or restart) the live conversation list, optionally for another operator."""
        self.unsubscribe()
        if operator_id is not None and operator_id != self.operator_id:
            self.operator_id = operator_id
            self.conversations = []
        self.loading = True
        self._subscription = await self.hub.subscribe(
            conversations_topic(self.operator_id),
            self.query_factory(self.operator_id),
            self._on_push,
            on_error=self._on_error,
        )
        return self._subscription

    def unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._enrichment is not None and not self._enrichment.done():
            self._enrichment.cancel()
        self._enrichment = None

    async def close(self) -> None:
        task = self._enrichment
        self.unsubscribe()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.error("Name enrichment for %s failed: %s", self.operator_id, exc)

    def _on_error(self, exc: Exception) -> None:
        logger.error("Conversation subscription for %s stopped: %s", self.operator_id, exc)
        self._subscription = None
        self.loading = False

    async def _on_push(self, conversations: List[ConversationView]) -> None:
        self.apply_snapshot(conversations)
        await self._emit()
        self._schedule_enrichment()

    # ── local state ─────────────────────────────────────────────────────────

    def apply_snapshot(self, conversations: List[ConversationView]) -> List[ConversationView]:
        """Replace the list, carrying over names already resolved locally."""
        known = {c.id: c.patient_name for c in self.conversations if c.patient_name}
        merged = []
        for conversation in conversations:
            if not conversation.patient_name and conversation.id in known:
                conversation = conversation.model_copy(update={"patient_name": known[conversation.id]})
            merged.append(conversation)
        self.conversations = merged
        self.loading = False
        return self.conversations

    def upsert(self, conversation: Union[ConversationView, Dict]) -> ConversationView:
        """
        Insert a conversation at the head, or merge into the existing entry.

        Only fields present on the incoming value overwrite; everything else
        on the existing entry is preserved.
        """
        if isinstance(conversation, dict):
            conversation_id = conversation["id"]
            updates = dict(conversation)
        else:
            conversation_id = conversation.id
            updates = conversation.model_dump(exclude_unset=True)

        for index, existing in enumerate(self.conversations):
            if existing.id == conversation_id:
                # The participant pair is fixed at creation
                updates.pop("id", None)
                updates.pop("participants", None)
                merged = existing.model_copy(update=updates)
                self.conversations[index] = merged
                return merged

        created = (
            ConversationView.model_validate(updates)
            if isinstance(conversation, dict)
            else conversation
        )
        self.conversations.insert(0, created)
        return created

    def get(self, conversation_id: str) -> Optional[ConversationView]:
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def find_with_participant(self, participant_id: str) -> Optional[ConversationView]:
        for conversation in self.conversations:
            if participant_id in conversation.participants:
                return conversation
        return None

    def other_participant(self, conversation: ConversationView) -> Optional[str]:
        for participant in conversation.participants:
            if participant != self.operator_id:
                return participant
        return None

    # ── name enrichment ─────────────────────────────────────────────────────

    def _schedule_enrichment(self) -> None:
        if not any(not c.patient_name for c in self.conversations):
            return
        if self._enrichment is not None and not self._enrichment.done():
            self._enrichment.cancel()
        self._enrichment = asyncio.get_running_loop().create_task(self.enrich_names())

    async def enrich_names(self) -> int:
        """Attach patient names to unnamed conversations. Returns how many were named."""
        named = 0
        for conversation in list(self.conversations):
            if conversation.patient_name:
                continue
            patient_id = self.other_participant(conversation)
            if not patient_id:
                continue
            try:
                name = self.name_lookup(patient_id)
                if inspect.isawaitable(name):
                    name = await name
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Error loading patient name for conversation %s: %s", conversation.id, exc)
                continue
            if name and self.get(conversation.id) is not None:
                self.upsert({"id": conversation.id, "patient_name": name})
                named += 1
        if named:
            await self._emit()
        return named

    async def _emit(self) -> None:
        if self.on_change is None:
            return
        result = self.on_change(list(self.conversations))
        if inspect.isawaitable(result):
            await result
