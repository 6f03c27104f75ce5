"""Conversations, messages and the messaging view."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

from ..models.base import get_db
from ..core.errors import NotFoundError
from ..core.security import get_current_user
from ..core.timefmt import format_time
from ..services import dashboard
from ..services.messaging import (
    ConversationView,
    MessageView,
    get_conversation,
    get_patient,
    list_conversations,
    list_messages,
    send_message,
    start_conversation,
)
from .patients import PatientResponse, patient_out

router = APIRouter(tags=["messaging"])

DEFAULT_PATIENT_LABEL = "Patient"


class ConversationResponse(BaseModel):
    id: str
    participants: List[str]
    patient_id: Optional[str]
    patient_name: str
    last_message: str
    last_message_time: Optional[datetime]
    last_message_time_display: str


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    text: str
    timestamp: Optional[datetime]
    time_display: str
    sent_by_me: bool
    client_id: Optional[str] = None
    pending: bool = False


class SendMessageRequest(BaseModel):
    text: str
    client_id: Optional[str] = None


class StartConversationRequest(SendMessageRequest):
    patient_id: str


class StartConversationResponse(BaseModel):
    conversation: ConversationResponse
    message: MessageResponse
    created: bool


class MessagingViewResponse(BaseModel):
    conversations: List[ConversationResponse]
    selected_conversation: Optional[ConversationResponse]
    messages: List[MessageResponse]
    patient: Optional[PatientResponse]


def conversation_out(conversation: ConversationView, operator_id: str) -> ConversationResponse:
    others = [p for p in conversation.participants if p != operator_id]
    return ConversationResponse(
        id=conversation.id,
        participants=list(conversation.participants),
        patient_id=others[0] if others else None,
        patient_name=conversation.patient_name or DEFAULT_PATIENT_LABEL,
        last_message=conversation.last_message or "",
        last_message_time=conversation.last_message_time,
        last_message_time_display=format_time(conversation.last_message_time),
    )


def message_out(message: MessageView, operator_id: str) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        text=message.text,
        timestamp=message.timestamp,
        time_display=format_time(message.timestamp),
        sent_by_me=message.sender_id == operator_id,
        client_id=message.client_id,
        pending=message.pending,
    )


def _require_text(text: str) -> str:
    text = (text or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message text is required")
    return text


def _require_participant(db: Session, conversation_id: str, operator_id: str):
    conversation = get_conversation(db, conversation_id)
    if operator_id not in conversation.participants:
        # Other operators' threads are indistinguishable from missing ones
        raise NotFoundError("Conversation", conversation_id)
    return conversation


def _named_conversations(db: Session, operator_id: str) -> List[ConversationView]:
    conversations = list_conversations(db, operator_id)
    missing = [c for c in conversations if not c.patient_name]
    if not missing:
        return conversations
    patients = dashboard.patients_by_id(
        db, (p for c in missing for p in c.participants if p != operator_id),
    )
    named = []
    for conversation in conversations:
        if not conversation.patient_name:
            patient = next((patients[p] for p in conversation.participants if p in patients), None)
            if patient:
                conversation = conversation.model_copy(update={"patient_name": patient.full_name})
        named.append(conversation)
    return named


@router.get("/conversations", response_model=List[ConversationResponse])
def get_conversations(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    """Conversations of the signed-in operator, most recent first."""
    return [conversation_out(c, current_user.id) for c in _named_conversations(db, current_user.id)]


@router.post("/conversations", response_model=StartConversationResponse, status_code=status.HTTP_201_CREATED)
async def post_conversation(
    req: StartConversationRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Message a patient, creating the conversation on first contact."""
    text = _require_text(req.text)
    conversation, message, created = await start_conversation(
        db, current_user.id, req.patient_id, text, req.client_id,
    )
    return StartConversationResponse(
        conversation=conversation_out(ConversationView.model_validate(conversation), current_user.id),
        message=message_out(MessageView.model_validate(message), current_user.id),
        created=created,
    )


@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageResponse])
def get_messages(
    conversation_id: str,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    _require_participant(db, conversation_id, current_user.id)
    return [message_out(m, current_user.id) for m in list_messages(db, conversation_id)]


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    conversation_id: str,
    req: SendMessageRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    text = _require_text(req.text)
    _require_participant(db, conversation_id, current_user.id)
    message = await send_message(db, conversation_id, current_user.id, text, req.client_id)
    return message_out(MessageView.model_validate(message), current_user.id)


@router.get("/messaging", response_model=MessagingViewResponse)
def messaging_view(
    patient_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """
    Everything the messaging screen needs in one call.

    With ``patient_id`` the conversation with that patient is selected; if
    there is none yet, the patient is returned with an empty thread and the
    conversation is created by the first ``POST /conversations``. Without it
    the most recent conversation is selected.
    """
    conversations = _named_conversations(db, current_user.id)

    selected = None
    target_patient_id = patient_id
    if patient_id:
        selected = next((c for c in conversations if patient_id in c.participants), None)
    elif conversations:
        selected = conversations[0]
        target_patient_id = next((p for p in selected.participants if p != current_user.id), None)

    patient = get_patient(db, target_patient_id) if target_patient_id else None
    if patient_id and patient is None:
        raise NotFoundError("Patient", patient_id)

    messages = list_messages(db, selected.id) if selected else []
    return MessagingViewResponse(
        conversations=[conversation_out(c, current_user.id) for c in conversations],
        selected_conversation=conversation_out(selected, current_user.id) if selected else None,
        messages=[message_out(m, current_user.id) for m in messages],
        patient=patient_out(patient) if patient else None,
    )
