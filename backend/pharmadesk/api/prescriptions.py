"""Prescription requests: dashboard, status changes, pharmacist messages."""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

from ..models.base import get_db
from ..models.patient import Patient
from ..models.prescription import Prescription
from ..core.errors import NotFoundError
from ..core.security import get_current_user
from ..core.timefmt import format_datetime
from ..services import dashboard
from ..services.prescription_status import (
    STATUS_ORDER,
    add_pharmacist_message,
    canonical_status,
    confirmation_prompt,
    status_matches,
    try_canonical_status,
    update_prescription_status,
)

router = APIRouter(prefix="/prescriptions", tags=["prescriptions"])


class StatusOption(BaseModel):
    value: str
    label: str
    color: str


class StatusHistoryEntry(BaseModel):
    status: str
    status_label: str
    message: str
    timestamp_display: str


class PharmacistMessageEntry(BaseModel):
    id: str
    content: str
    is_from_user: bool
    timestamp_display: str


class PrescriptionResponse(BaseModel):
    id: str
    patient_id: str
    patient_name: Optional[str] = None
    medication_name: str
    rx_number: Optional[str]
    dosage: Optional[str]
    instructions: Optional[str]
    type: Optional[str]
    notes: Optional[str]
    image_url: Optional[str]
    prescribed_date: Optional[datetime]
    prescribed_date_display: str
    status: str
    status_label: str
    status_color: Optional[str]
    status_history: List[StatusHistoryEntry]
    pharmacist_messages: List[PharmacistMessageEntry]


class RequestGroup(BaseModel):
    status: str
    label: str
    count: int
    requests: List[PrescriptionResponse]


class RequestStats(BaseModel):
    total: int
    new: int
    urgent: int
    ready_for_pickup: int


class RequestsDashboardResponse(BaseModel):
    stats: RequestStats
    groups: List[RequestGroup]


class StatusUpdateRequest(BaseModel):
    status: str
    note: Optional[str] = None
    confirmed: bool = False


class PharmacistMessageRequest(BaseModel):
    text: str


def _label(value: Optional[str]) -> str:
    canonical = try_canonical_status(value)
    return canonical.label if canonical else (value or "")


def prescription_out(prescription: Prescription, patient: Optional[Patient] = None) -> PrescriptionResponse:
    canonical = try_canonical_status(prescription.status)
    return PrescriptionResponse(
        id=prescription.id,
        patient_id=prescription.patient_id,
        patient_name=patient.full_name if patient else None,
        medication_name=prescription.medication_name,
        rx_number=prescription.rx_number,
        dosage=prescription.dosage,
        instructions=prescription.instructions,
        type=prescription.type,
        notes=prescription.notes,
        image_url=prescription.image_url,
        prescribed_date=prescription.prescribed_date,
        prescribed_date_display=format_datetime(prescription.prescribed_date),
        # Legacy spellings are reported canonically
        status=canonical.value if canonical else prescription.status,
        status_label=_label(prescription.status),
        status_color=canonical.color if canonical else None,
        status_history=[
            StatusHistoryEntry(
                status=entry.get("status", ""),
                status_label=_label(entry.get("status")),
                message=entry.get("message", ""),
                timestamp_display=format_datetime(entry.get("timestamp")),
            )
            for entry in prescription.status_history or []
        ],
        pharmacist_messages=[
            PharmacistMessageEntry(
                id=str(entry.get("id", "")),
                content=entry.get("content", ""),
                is_from_user=bool(entry.get("is_from_user", False)),
                timestamp_display=format_datetime(entry.get("timestamp")),
            )
            for entry in prescription.pharmacist_messages or []
        ],
    )


@router.get("/statuses", response_model=List[StatusOption])
def list_statuses(current_user=Depends(get_current_user)):
    """Status options for the filter dropdown, in workflow order."""
    return [StatusOption(value=s.value, label=s.label, color=s.color) for s in STATUS_ORDER]


@router.get("/requests", response_model=RequestsDashboardResponse)
def requests_dashboard(
    q: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Open prescription requests across all patients, grouped by status."""
    if status_filter and status_filter.lower() != "all":
        # Reject unknown filters even when nothing is open
        canonical_status(status_filter)
    requests = dashboard.open_requests(db)
    patients = dashboard.patients_by_id(db, (r.patient_id for r in requests))

    filtered = [
        r for r in requests
        if status_matches(r.status, status_filter)
        and dashboard.request_matches(r, patients.get(r.patient_id), q)
    ]

    groups = [
        RequestGroup(
            status=group["status"].value,
            label=group["label"],
            count=len(group["requests"]),
            requests=[prescription_out(r, patients.get(r.patient_id)) for r in group["requests"]],
        )
        for group in dashboard.group_by_status(filtered)
    ]
    # Summary counts describe everything open, not just the filtered view
    return RequestsDashboardResponse(stats=RequestStats(**dashboard.request_stats(requests)), groups=groups)


@router.get("/{prescription_id}", response_model=PrescriptionResponse)
def get_prescription(
    prescription_id: str,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    prescription = db.query(Prescription).filter(Prescription.id == prescription_id).first()
    if not prescription:
        raise NotFoundError("Prescription", prescription_id)
    return prescription_out(prescription, prescription.patient)


@router.patch("/{prescription_id}/status", response_model=PrescriptionResponse)
def update_status(
    prescription_id: str,
    req: StatusUpdateRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """
    Change a prescription's status.

    A change to a different status must be confirmed by the operator; an
    unconfirmed request is answered with 409 and the confirmation prompt.
    """
    target = canonical_status(req.status)
    prescription = db.query(Prescription).filter(Prescription.id == prescription_id).first()
    if not prescription:
        raise NotFoundError("Prescription", prescription_id)

    if try_canonical_status(prescription.status) is not target and not req.confirmed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"confirmation_required": True, "prompt": confirmation_prompt(target)},
        )

    prescription = update_prescription_status(db, prescription_id, target, req.note)
    return prescription_out(prescription, prescription.patient)


@router.post("/{prescription_id}/messages", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
def post_pharmacist_message(
    prescription_id: str,
    req: PharmacistMessageRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Attach a pharmacist message to the prescription."""
    if not req.text.strip():
        raise HTTPException(status_code=400, detail="Message text is required")
    prescription = add_pharmacist_message(db, prescription_id, req.text.strip())
    return prescription_out(prescription, prescription.patient)
