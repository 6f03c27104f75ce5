"""
Websocket channels for live conversation lists and message streams.

Both channels authenticate with the ``token`` query parameter and push the
full current result set on every change.
"""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from ..core.errors import NotFoundError, PharmaDeskError
from ..core.security import authenticate_websocket
from ..models.base import session_scope
from ..services.conversation_store import ConversationStore
from ..services.message_stream import MessageStream
from ..services.messaging import get_conversation
from .conversations import conversation_out, message_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["live"])


async def _accept(websocket: WebSocket):
    operator_id = authenticate_websocket(websocket)
    if operator_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    await websocket.accept()
    return operator_id


@router.websocket("/conversations")
async def conversations_channel(websocket: WebSocket):
    """Push the operator's conversation list whenever it changes."""
    operator_id = await _accept(websocket)
    if operator_id is None:
        return

    async def push(conversations):
        await websocket.send_json({
            "type": "conversations",
            "conversations": [conversation_out(c, operator_id).model_dump(mode="json") for c in conversations],
        })

    store = ConversationStore(operator_id, on_change=push)
    try:
        await store.subscribe()
        while True:
            command = await websocket.receive_json()
            if command.get("action") == "refresh":
                await store.subscribe()
    except WebSocketDisconnect:
        logger.debug("Conversation channel closed for %s", operator_id)
    finally:
        await store.close()


@router.websocket("/messages")
async def messages_channel(websocket: WebSocket):
    """
    Message stream for one selected conversation at a time.

    Commands: ``{"action": "select", "conversation_id": ...}`` switches the
    stream (the previous subscription is released first) and
    ``{"action": "send", "text": ..., "client_id": ...}`` sends to the
    selected conversation; ``client_id`` becomes the pending entry's id.
    """
    operator_id = await _accept(websocket)
    if operator_id is None:
        return

    async def push(messages):
        await websocket.send_json({
            "type": "messages",
            "conversation_id": stream.conversation_id,
            "messages": [message_out(m, operator_id).model_dump(mode="json") for m in messages],
        })

    async def report(message: str):
        await websocket.send_json({"type": "error", "detail": message})

    stream = MessageStream()
    try:
        while True:
            command = await websocket.receive_json()
            action = command.get("action")
            if action == "select":
                conversation_id = command.get("conversation_id") or ""
                try:
                    with session_scope() as db:
                        conversation = get_conversation(db, conversation_id)
                        if operator_id not in conversation.participants:
                            raise NotFoundError("Conversation", conversation_id)
                except PharmaDeskError as exc:
                    stream.unsubscribe()
                    await report(exc.user_message)
                    continue
                await stream.subscribe(conversation_id, push)
            elif action == "send":
                text = (command.get("text") or "").strip()
                if not text or stream.conversation_id is None:
                    await report("Select a conversation and enter a message")
                    continue
                try:
                    with session_scope() as db:
                        await stream.send(db, stream.conversation_id, operator_id, text,
                                          client_id=command.get("client_id"))
                except PharmaDeskError as exc:
                    await report(exc.user_message)
            elif action == "refetch":
                await stream.refetch()
            else:
                await report(f"Unknown action: {action}")
    except WebSocketDisconnect:
        logger.debug("Message channel closed for %s", operator_id)
    finally:
        stream.unsubscribe()
