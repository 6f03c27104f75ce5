from datetime import datetime
from typing import List

from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from .base import Base, generate_uuid


class Conversation(Base):
    """Two-party thread between one operator and one patient."""
    __tablename__ = "conversations"

    id = Column(String, primary_key=True, default=generate_uuid)
    # Participant pair is fixed at creation
    pharmacist_id = Column(String, nullable=False, index=True)
    patient_id = Column(String, nullable=False, index=True)
    patient_name = Column(String(200), nullable=True)  # Cached display name

    last_message = Column(Text, nullable=False, default="")
    last_message_time = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.timestamp",
    )

    @property
    def participants(self) -> List[str]:
        return [self.pharmacist_id, self.patient_id]


class Message(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=generate_uuid)
    conversation_id = Column(String, ForeignKey("conversations.id"), nullable=False, index=True)
    sender_id = Column(String, nullable=False)
    text = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    # Temporary id of the optimistic local copy, echoed back on push
    client_id = Column(String(64), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
