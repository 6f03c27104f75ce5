"""
Read-side helpers for the patient and prescription views.

List queries swallow data-fetch failures at this boundary: the error is
logged and the view renders empty instead of failing the request.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.patient import Patient
from ..models.prescription import Prescription
from .prescription_status import (
    STATUS_GROUP_LABELS,
    STATUS_ORDER,
    PrescriptionStatus,
    spellings_of,
    status_matches,
    try_canonical_status,
)

logger = logging.getLogger(__name__)

OPEN_STATUSES = [s for s in STATUS_ORDER if not s.is_terminal]


def matches_name(patient: Optional[Patient], query: Optional[str]) -> bool:
    """Case-insensitive substring match on "First Last"."""
    if not query:
        return True
    if patient is None:
        return False
    return query.strip().lower() in patient.full_name.lower()


def _by_prescribed_date_desc(prescriptions: Iterable[Prescription]) -> List[Prescription]:
    return sorted(prescriptions, key=lambda p: p.prescribed_date or datetime.min, reverse=True)


def is_completed(prescription: Prescription) -> bool:
    return try_canonical_status(prescription.status) is PrescriptionStatus.COMPLETED


def list_patients(db: Session, query: Optional[str] = None) -> List[Patient]:
    try:
        patients = (
            db.query(Patient)
            .filter(Patient.is_active == True)
            .order_by(Patient.last_name, Patient.first_name)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.error("Error loading patients: %s", exc)
        return []
    return [p for p in patients if matches_name(p, query)]


def patient_prescriptions(db: Session, patient_id: str) -> List[Prescription]:
    """All prescriptions for a patient, newest prescribed first."""
    try:
        rows = db.query(Prescription).filter(Prescription.patient_id == patient_id).all()
    except SQLAlchemyError as exc:
        logger.error("Error fetching prescriptions for patient %s: %s", patient_id, exc)
        return []
    return _by_prescribed_date_desc(rows)


def split_active_and_history(
    prescriptions: Iterable[Prescription],
    status_filter: Optional[str] = None,
):
    """Return ``(active, history)``; the status filter applies to active only."""
    active, history = [], []
    for prescription in prescriptions:
        if is_completed(prescription):
            history.append(prescription)
        elif status_matches(prescription.status, status_filter):
            active.append(prescription)
    return active, history


def open_requests(db: Session) -> List[Prescription]:
    """Every prescription not yet completed, newest prescribed first."""
    try:
        rows = (
            db.query(Prescription)
            .filter(Prescription.status.notin_(spellings_of(PrescriptionStatus.COMPLETED)))
            .all()
        )
    except SQLAlchemyError as exc:
        logger.error("Error loading prescription requests: %s", exc)
        return []
    return _by_prescribed_date_desc(p for p in rows if not is_completed(p))


def request_matches(prescription: Prescription, patient: Optional[Patient], query: Optional[str]) -> bool:
    """Search over patient name, medication name and rx number."""
    if not query:
        return True
    needle = query.strip().lower()
    haystacks = [
        patient.full_name if patient else "",
        prescription.medication_name or "",
        prescription.rx_number or "",
    ]
    return any(needle in h.lower() for h in haystacks)


def group_by_status(prescriptions: Iterable[Prescription]) -> List[dict]:
    """Open requests bucketed by canonical status, in workflow order, empty groups dropped."""
    buckets: Dict[PrescriptionStatus, List[Prescription]] = {s: [] for s in OPEN_STATUSES}
    for prescription in prescriptions:
        status = try_canonical_status(prescription.status)
        if status in buckets:
            buckets[status].append(prescription)
        else:
            logger.warning("Prescription %s has unrecognized status %r", prescription.id, prescription.status)
    return [
        {"status": status, "label": STATUS_GROUP_LABELS[status], "requests": items}
        for status, items in buckets.items()
        if items
    ]


def request_stats(prescriptions: Iterable[Prescription]) -> dict:
    counts: Dict[Optional[PrescriptionStatus], int] = {}
    total = 0
    for prescription in prescriptions:
        total += 1
        status = try_canonical_status(prescription.status)
        counts[status] = counts.get(status, 0) + 1
    return {
        "total": total,
        "new": counts.get(PrescriptionStatus.REQUEST_RECEIVED, 0),
        "urgent": counts.get(PrescriptionStatus.PHARMACIST_CHECK, 0),
        "ready_for_pickup": counts.get(PrescriptionStatus.READY_FOR_PICKUP, 0),
    }


def patients_by_id(db: Session, patient_ids: Iterable[str]) -> Dict[str, Patient]:
    ids = {pid for pid in patient_ids if pid}
    if not ids:
        return {}
    try:
        rows = db.query(Patient).filter(Patient.id.in_(ids)).all()
    except SQLAlchemyError as exc:
        logger.error("Error loading patient details: %s", exc)
        return {}
    return {p.id: p for p in rows}
