from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class Prescription(Base, TimestampMixin):
    __tablename__ = "prescriptions"

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String, ForeignKey("patients.id"), nullable=False, index=True)

    medication_name = Column(String(200), nullable=False)
    rx_number = Column(String(50), nullable=True, index=True)
    dosage = Column(String(200), nullable=True)
    instructions = Column(Text, nullable=True)
    type = Column(String(50), nullable=True)  # "new", "refill", ...
    notes = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    prescribed_date = Column(DateTime, nullable=True)

    # May hold either legacy spelling; see services.prescription_status
    status = Column(String(40), nullable=False, default="requestReceived", index=True)
    # [{status, timestamp: {seconds, nanoseconds}, message}], append-only
    status_history = Column(JSON, nullable=False, default=list)
    notified_on_status_change = Column(Boolean, default=False)

    # Latest pharmacist message, kept for older clients
    pharmacist_message = Column(Text, nullable=True)
    # [{id, content, timestamp: {seconds, nanoseconds}, is_from_user}], append-only
    pharmacist_messages = Column(JSON, nullable=False, default=list)

    patient = relationship("Patient", back_populates="prescriptions")
