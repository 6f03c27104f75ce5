"""Password hashing, access tokens and the current-operator dependencies."""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import settings
from ..models.base import get_db, session_scope
from ..models.user import Operator

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def new_session_nonce() -> str:
    return secrets.token_hex(16)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Return the token payload, or None if it is invalid or expired."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        return None


def _operator_from_token(token: Optional[str], db: Session) -> Optional[Operator]:
    if not token:
        return None
    payload = decode_access_token(token)
    if payload is None or payload.get("type") != "access":
        return None
    operator = db.query(Operator).filter(Operator.id == payload.get("sub")).first()
    if not operator or not operator.is_active:
        return None
    sid = payload.get("sid")
    if not sid or operator.session_nonce != sid:
        # Signed out since the token was issued
        return None
    return operator


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Operator:
    token = credentials.credentials if credentials else None
    operator = _operator_from_token(token, db)
    if operator is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return operator


def authenticate_websocket(websocket: WebSocket) -> Optional[str]:
    """Resolve the operator id for a websocket from its ``token`` query parameter."""
    token = websocket.query_params.get("token")
    with session_scope() as db:
        operator = _operator_from_token(token, db)
        return operator.id if operator else None
