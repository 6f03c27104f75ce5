from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel

from ..models.base import get_db
from ..models.patient import Patient
from ..core.errors import NotFoundError
from ..core.security import get_current_user
from ..core.timefmt import format_date
from ..services import dashboard
from ..services.prescription_status import canonical_status
from .prescriptions import PrescriptionResponse, prescription_out

router = APIRouter(prefix="/patients", tags=["patients"])


class PatientResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    full_name: str
    date_of_birth: Optional[str]
    date_of_birth_display: str
    phone: Optional[str]
    email: Optional[str]
    medical_id: Optional[str]
    allergies: List[str]
    primary_doctor: Optional[str]


class PatientDetailResponse(BaseModel):
    patient: PatientResponse
    active_requests: List[PrescriptionResponse]
    prescription_history: List[PrescriptionResponse]


def patient_out(patient: Patient) -> PatientResponse:
    return PatientResponse(
        id=patient.id,
        first_name=patient.first_name,
        last_name=patient.last_name,
        full_name=patient.full_name,
        date_of_birth=patient.date_of_birth,
        date_of_birth_display=format_date(patient.date_of_birth),
        phone=patient.phone,
        email=patient.email,
        medical_id=patient.medical_id,
        allergies=list(patient.allergies or []),
        primary_doctor=patient.primary_doctor,
    )


@router.get("/", response_model=List[PatientResponse])
def list_patients(
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Patient list, optionally filtered by a substring of the full name."""
    return [patient_out(p) for p in dashboard.list_patients(db, q)]


@router.get("/{patient_id}", response_model=PatientDetailResponse)
def get_patient(
    patient_id: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Patient details with active requests and completed prescription history."""
    if status_filter and status_filter.lower() != "all":
        canonical_status(status_filter)
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if not patient:
        raise NotFoundError("Patient", patient_id)

    active, history = dashboard.split_active_and_history(
        dashboard.patient_prescriptions(db, patient_id), status_filter,
    )
    return PatientDetailResponse(
        patient=patient_out(patient),
        active_requests=[prescription_out(p, patient) for p in active],
        prescription_history=[prescription_out(p, patient) for p in history],
    )
