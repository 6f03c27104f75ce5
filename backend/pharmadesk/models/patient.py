from sqlalchemy import Column, String, Boolean, JSON
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class Patient(Base, TimestampMixin):
    __tablename__ = "patients"

    id = Column(String, primary_key=True, default=generate_uuid)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    # Kept as supplied by intake, usually "YYYY-MM-DD"
    date_of_birth = Column(String(40), nullable=True)
    phone = Column(String(40), nullable=True)
    email = Column(String(255), nullable=True)
    medical_id = Column(String(50), nullable=True, index=True)
    allergies = Column(JSON, nullable=False, default=list)
    primary_doctor = Column(String(200), nullable=True)
    is_active = Column(Boolean, default=True)

    prescriptions = relationship("Prescription", back_populates="patient")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
