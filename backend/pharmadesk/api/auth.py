"""Authentication endpoints: login, me, logout."""
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict

from ..models.base import get_db
from ..models.user import Operator, OperatorRole
from ..core.security import create_access_token, get_current_user, new_session_nonce
from ..services.identity_client import identity_client

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Request / Response schemas ──────────────────────────────────────────────

class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    operator_id: str


class OperatorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: Optional[str]
    role: str
    is_active: bool
    last_login: Optional[datetime]


# ── Endpoints ────────────────────────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    """Sign in with email and password and receive an access token."""
    identity = identity_client.sign_in(req.email, req.password, db)

    # Mirror the identity into a local operator record
    operator = db.query(Operator).filter(Operator.id == identity.uid).first()
    if operator is None:
        operator = Operator(
            id=identity.uid,
            email=identity.email,
            full_name=identity.display_name,
            role=OperatorRole.PHARMACIST,
        )
        db.add(operator)

    operator.session_nonce = new_session_nonce()
    operator.last_login = datetime.utcnow()
    db.commit()

    token = create_access_token({"sub": operator.id, "role": operator.role, "sid": operator.session_nonce})
    return TokenResponse(access_token=token, operator_id=operator.id)


@router.get("/me", response_model=OperatorResponse)
def get_me(current_user=Depends(get_current_user)):
    """Return the signed-in operator."""
    return current_user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    """Invalidate every token issued for the current session."""
    current_user.session_nonce = None
    db.commit()
