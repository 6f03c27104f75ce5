from sqlalchemy import Column, String, Boolean, DateTime
from .base import Base, TimestampMixin, generate_uuid


class OperatorRole:
    PHARMACIST = "pharmacist"
    TECHNICIAN = "technician"
    ADMIN = "admin"

    ALL = [PHARMACIST, TECHNICIAN, ADMIN]


class Operator(Base, TimestampMixin):
    """Signed-in dashboard user. ``id`` is the identity-service principal."""
    __tablename__ = "operators"

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=True)
    # Only populated when identity runs in local (mock) mode
    hashed_password = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=OperatorRole.PHARMACIST)
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime, nullable=True)
    # Rotated on sign-in and sign-out; access tokens carry it as "sid"
    session_nonce = Column(String(64), nullable=True)
