"""
Conversation and message data access.

Messages are stored in one table keyed by ``conversation_id``; every read and
write of conversations or messages goes through this module. Writers publish
the affected live-query topics so open subscriptions receive fresh snapshots.
"""
import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.errors import NotFoundError
from ..models.base import generate_uuid, session_scope
from ..models.conversation import Conversation, Message
from ..models.patient import Patient
from .live_query import LiveQueryHub, conversations_topic, live_hub, messages_topic

logger = logging.getLogger(__name__)


class ConversationView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    participants: List[str]
    last_message: str = ""
    last_message_time: Optional[datetime] = None
    patient_name: Optional[str] = None
    created_at: Optional[datetime] = None


class MessageView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation_id: str
    sender_id: str
    text: str
    timestamp: Optional[datetime] = None
    client_id: Optional[str] = None
    # Local optimistic entries only
    pending: bool = False
    server_id: Optional[str] = None


# ── Reads ────────────────────────────────────────────────────────────────────

def list_conversations(db: Session, participant_id: str) -> List[ConversationView]:
    """Conversations including ``participant_id``, most recent activity first."""
    rows = (
        db.query(Conversation)
        .filter(or_(Conversation.pharmacist_id == participant_id, Conversation.patient_id == participant_id))
        .order_by(Conversation.last_message_time.desc())
        .all()
    )
    return [ConversationView.model_validate(row) for row in rows]


def get_conversation(db: Session, conversation_id: str) -> Conversation:
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if conversation is None:
        raise NotFoundError("Conversation", conversation_id)
    return conversation


def find_conversation_between(db: Session, operator_id: str, patient_id: str) -> Optional[Conversation]:
    return (
        db.query(Conversation)
        .filter(Conversation.pharmacist_id == operator_id, Conversation.patient_id == patient_id)
        .first()
    )


def list_messages(db: Session, conversation_id: str) -> List[MessageView]:
    rows = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.timestamp.asc())
        .all()
    )
    return [MessageView.model_validate(row) for row in rows]


def get_patient(db: Session, patient_id: str) -> Optional[Patient]:
    return db.query(Patient).filter(Patient.id == patient_id).first()


def patient_display_name(patient_id: str) -> Optional[str]:
    """Formatted name for a patient, or None if there is no such record."""
    with session_scope() as db:
        patient = get_patient(db, patient_id)
        return patient.full_name if patient else None


def conversations_query(participant_id: str):
    """Live-query function for a participant's conversation list."""
    def run() -> List[ConversationView]:
        with session_scope() as db:
            return list_conversations(db, participant_id)
    return run


def messages_query(conversation_id: str):
    def run() -> List[MessageView]:
        with session_scope() as db:
            return list_messages(db, conversation_id)
    return run


# ── Writes ───────────────────────────────────────────────────────────────────

def create_conversation(
    db: Session,
    pharmacist_id: str,
    patient_id: str,
    initial_message: Optional[str] = None,
    patient_name: Optional[str] = None,
) -> Conversation:
    now = datetime.utcnow()
    conversation = Conversation(
        id=generate_uuid(),
        pharmacist_id=pharmacist_id,
        patient_id=patient_id,
        patient_name=patient_name,
        last_message=initial_message or "",
        last_message_time=now,
        created_at=now,
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    logger.info("Conversation %s created between %s and %s", conversation.id, pharmacist_id, patient_id)
    return conversation


def write_message(
    db: Session,
    conversation_id: str,
    sender_id: str,
    text: str,
    client_id: Optional[str] = None,
) -> Message:
    """
    Persist a message, then refresh the conversation's last-message fields.

    The two writes are committed separately. If the second fails the message
    log is intact and only the list preview is stale.
    """
    conversation = get_conversation(db, conversation_id)
    message = Message(
        id=generate_uuid(),
        conversation_id=conversation_id,
        sender_id=sender_id,
        text=text,
        timestamp=datetime.utcnow(),
        client_id=client_id,
    )
    db.add(message)
    db.commit()
    db.refresh(message)

    conversation.last_message = text
    conversation.last_message_time = message.timestamp
    db.commit()
    return message


async def publish_conversation(conversation: Conversation, hub: Optional[LiveQueryHub] = None,
                               include_messages: bool = True) -> None:
    hub = hub or live_hub
    topics = [conversations_topic(p) for p in conversation.participants]
    if include_messages:
        topics.append(messages_topic(conversation.id))
    await hub.publish(*topics)


async def send_message(
    db: Session,
    conversation_id: str,
    sender_id: str,
    text: str,
    client_id: Optional[str] = None,
    hub: Optional[LiveQueryHub] = None,
) -> Message:
    """Write a message and push the change to open subscriptions."""
    message = write_message(db, conversation_id, sender_id, text, client_id)
    await publish_conversation(get_conversation(db, conversation_id), hub)
    return message


async def start_conversation(
    db: Session,
    operator_id: str,
    patient_id: str,
    text: str,
    client_id: Optional[str] = None,
    hub: Optional[LiveQueryHub] = None,
):
    """
    Send ``text`` to a patient, creating the conversation if none exists.

    Returns ``(conversation, message, created)``.
    """
    patient = get_patient(db, patient_id)
    if patient is None:
        raise NotFoundError("Patient", patient_id)

    conversation = find_conversation_between(db, operator_id, patient_id)
    created = conversation is None
    if created:
        conversation = create_conversation(db, operator_id, patient_id, text, patient.full_name)

    message = await send_message(db, conversation.id, operator_id, text, client_id, hub)
    db.refresh(conversation)
    return conversation, message, created
