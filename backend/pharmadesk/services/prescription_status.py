"""
Prescription fulfilment status machine.

Stored data carries two spellings of every status: the human-readable label
written by older status editors ("Ready for Pickup") and the camelCase token
used by queries ("readyForPickup"). Every comparison, filter and transition
goes through ``canonical_status`` first.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from sqlalchemy.orm import Session

from ..core.errors import InvalidStatusError, NotFoundError
from ..core.timefmt import to_timestamp_pair
from ..models.base import generate_uuid
from ..models.prescription import Prescription

logger = logging.getLogger(__name__)


class PrescriptionStatus(str, Enum):
    REQUEST_RECEIVED = "requestReceived"
    ENTERED = "entered"
    PHARMACIST_CHECK = "pharmacistCheck"
    PREP_PACKAGING = "prepPackaging"
    BILLING = "billing"
    READY_FOR_PICKUP = "readyForPickup"
    COMPLETED = "completed"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @property
    def color(self) -> str:
        return STATUS_COLORS[self]

    @property
    def position(self) -> int:
        return STATUS_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is PrescriptionStatus.COMPLETED


STATUS_ORDER: List[PrescriptionStatus] = list(PrescriptionStatus)

INITIAL_STATUS = PrescriptionStatus.REQUEST_RECEIVED

STATUS_LABELS: Dict[PrescriptionStatus, str] = {
    PrescriptionStatus.REQUEST_RECEIVED: "Request Received",
    PrescriptionStatus.ENTERED: "Entered into System",
    PrescriptionStatus.PHARMACIST_CHECK: "Pharmacist Check",
    PrescriptionStatus.PREP_PACKAGING: "Prep & Packaging",
    PrescriptionStatus.BILLING: "Billing",
    PrescriptionStatus.READY_FOR_PICKUP: "Ready for Pickup",
    PrescriptionStatus.COMPLETED: "Completed",
}

# Headings used when open requests are grouped on the dashboard
STATUS_GROUP_LABELS: Dict[PrescriptionStatus, str] = {
    PrescriptionStatus.REQUEST_RECEIVED: "New Requests",
    PrescriptionStatus.ENTERED: "Entered into System",
    PrescriptionStatus.PHARMACIST_CHECK: "Awaiting Pharmacist Review",
    PrescriptionStatus.PREP_PACKAGING: "In Preparation",
    PrescriptionStatus.BILLING: "In Billing",
    PrescriptionStatus.READY_FOR_PICKUP: "Ready for Pickup",
    PrescriptionStatus.COMPLETED: "Completed",
}

STATUS_COLORS: Dict[PrescriptionStatus, str] = {
    PrescriptionStatus.REQUEST_RECEIVED: "#3498db",
    PrescriptionStatus.ENTERED: "#f39c12",
    PrescriptionStatus.PHARMACIST_CHECK: "#e74c3c",
    PrescriptionStatus.PREP_PACKAGING: "#9b59b6",
    PrescriptionStatus.BILLING: "#34495e",
    PrescriptionStatus.READY_FOR_PICKUP: "#2ecc71",
    PrescriptionStatus.COMPLETED: "#7f8c8d",
}


def _key(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


_ALIASES: Dict[str, PrescriptionStatus] = {}
for _status in PrescriptionStatus:
    for _spelling in (_status.value, _status.name, STATUS_LABELS[_status]):
        _ALIASES[_key(_spelling)] = _status
# Identifier used in design documents for the first state
_ALIASES[_key("ReceivedRequest")] = PrescriptionStatus.REQUEST_RECEIVED


StatusLike = Union[str, PrescriptionStatus]


def canonical_status(value: StatusLike) -> PrescriptionStatus:
    """Map any recognized spelling to its canonical status."""
    if isinstance(value, PrescriptionStatus):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidStatusError(value)
    try:
        return _ALIASES[_key(value)]
    except KeyError:
        raise InvalidStatusError(value) from None


def try_canonical_status(value) -> Optional[PrescriptionStatus]:
    try:
        return canonical_status(value)
    except InvalidStatusError:
        return None


def status_matches(value, status_filter: Optional[StatusLike]) -> bool:
    """Filter predicate: ``"all"`` or empty matches everything."""
    if status_filter is None or (isinstance(status_filter, str) and status_filter.strip().lower() in ("", "all")):
        return True
    wanted = canonical_status(status_filter)
    return try_canonical_status(value) is wanted


def spellings_of(status: PrescriptionStatus) -> List[str]:
    """Every stored spelling of a status, for use in database filters."""
    return [status.value, status.label]


def transition(
    prescription: Prescription,
    new_status: StatusLike,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Prescription:
    """
    Move a prescription to ``new_status``.

    A request for the current status is a no-op and leaves history untouched.
    Otherwise exactly one history entry is appended; prior entries are never
    modified. Backward moves are allowed.
    """
    target = canonical_status(new_status)
    current = try_canonical_status(prescription.status)
    if current is target:
        return prescription

    if current is not None and target.position < current.position:
        logger.info(
            "Prescription %s moved backward from %s to %s",
            prescription.id, current.value, target.value,
        )

    entry = {
        "status": target.value,
        "timestamp": to_timestamp_pair(now or datetime.utcnow()),
        "message": note or f"Status updated to {target.label}",
    }
    # Reassign rather than append so the JSON column is flagged dirty
    prescription.status_history = [*(prescription.status_history or []), entry]
    prescription.status = target.value
    prescription.notified_on_status_change = True
    return prescription


def record_message(prescription: Prescription, text: str, now: Optional[datetime] = None) -> Prescription:
    """Append a pharmacist-authored message; status is unchanged."""
    entry = {
        "id": generate_uuid(),
        "content": text,
        "timestamp": to_timestamp_pair(now or datetime.utcnow()),
        "is_from_user": False,
    }
    prescription.pharmacist_messages = [*(prescription.pharmacist_messages or []), entry]
    prescription.pharmacist_message = text
    return prescription


def confirmation_prompt(new_status: StatusLike) -> str:
    target = canonical_status(new_status)
    return f'Are you sure you want to update this prescription status to "{target.label}"?'


def _load(db: Session, prescription_id: str) -> Prescription:
    prescription = db.query(Prescription).filter(Prescription.id == prescription_id).first()
    if prescription is None:
        raise NotFoundError("Prescription", prescription_id)
    return prescription


def update_prescription_status(
    db: Session,
    prescription_id: str,
    new_status: StatusLike,
    note: Optional[str] = None,
) -> Prescription:
    """Load, transition and commit. Raises NotFoundError if the prescription is gone."""
    prescription = _load(db, prescription_id)
    previous = prescription.status
    transition(prescription, new_status, note)
    if prescription.status != previous:
        db.commit()
        db.refresh(prescription)
        logger.info("Prescription %s status updated to: %s", prescription_id, prescription.status)
    return prescription


def add_pharmacist_message(db: Session, prescription_id: str, text: str) -> Prescription:
    prescription = _load(db, prescription_id)
    record_message(prescription, text)
    db.commit()
    db.refresh(prescription)
    return prescription
