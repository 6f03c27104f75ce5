"""Shared fixtures: in-memory database, operators, patients and an API client."""
import os
from datetime import datetime

# Must be set before pharmadesk.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("IDENTITY_MOCK_MODE", "true")
os.environ.setdefault("DISPLAY_TIMEZONE", "UTC")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from pharmadesk.models import base  # noqa: E402
from pharmadesk.models.base import Base  # noqa: E402
from pharmadesk.models import conversation, patient, prescription, user  # noqa: F401, E402
from pharmadesk.models.patient import Patient  # noqa: E402
from pharmadesk.models.prescription import Prescription  # noqa: E402
from pharmadesk.models.user import Operator  # noqa: E402
from pharmadesk.core.security import create_access_token, get_password_hash, new_session_nonce  # noqa: E402

OPERATOR_PASSWORD = "secret123"


@pytest.fixture
def db_session(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    # get_db and session_scope both resolve SessionLocal at call time
    monkeypatch.setattr(base, "SessionLocal", TestingSession)

    db = TestingSession()
    yield db
    db.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


def make_operator(db, email="pharmacist@example.com", full_name="Pat Pharmacist", active=True):
    operator = Operator(
        email=email,
        full_name=full_name,
        hashed_password=get_password_hash(OPERATOR_PASSWORD),
        is_active=active,
        session_nonce=new_session_nonce(),
    )
    db.add(operator)
    db.commit()
    db.refresh(operator)
    return operator


def token_for(operator):
    return create_access_token({"sub": operator.id, "role": operator.role, "sid": operator.session_nonce})


@pytest.fixture
def operator(db_session):
    return make_operator(db_session)


@pytest.fixture
def other_operator(db_session):
    return make_operator(db_session, email="tech@example.com", full_name="Terry Tech")


@pytest.fixture
def auth_headers(operator):
    return {"Authorization": f"Bearer {token_for(operator)}"}


@pytest.fixture
def patient_jane(db_session):
    patient = Patient(
        first_name="Jane",
        last_name="Doe",
        date_of_birth="1980-04-15",
        phone="555-0100",
        email="jane@example.com",
        medical_id="MRN-1001",
        allergies=["Penicillin"],
        primary_doctor="Dr. Smith",
    )
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def patient_john(db_session):
    patient = Patient(first_name="John", last_name="Roe", date_of_birth="1975-01-02")
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


def make_prescription(db, patient, status="requestReceived", medication="Amoxicillin",
                      rx_number=None, prescribed=None, history=None):
    prescription = Prescription(
        patient_id=patient.id,
        medication_name=medication,
        rx_number=rx_number,
        dosage="500mg",
        instructions="Take twice daily",
        type="new",
        prescribed_date=prescribed or datetime(2024, 4, 15, 9, 5),
        status=status,
        status_history=history or [],
    )
    db.add(prescription)
    db.commit()
    db.refresh(prescription)
    return prescription


@pytest.fixture
def client(db_session):
    from pharmadesk.main import app

    with TestClient(app) as test_client:
        yield test_client
