"""
Identity service client for email/password sign-in.

Talks to the hosted identity REST API (``accounts:signInWithPassword``).
Supports mock mode for development, where credentials are checked against
local operator records instead.
"""
import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..core import errors
from ..core.config import settings
from ..core.errors import AuthError
from ..core.security import verify_password
from ..models.user import Operator

logger = logging.getLogger(__name__)

# Provider error tokens -> our error codes
PROVIDER_ERROR_CODES = {
    "EMAIL_NOT_FOUND": errors.AUTH_USER_NOT_FOUND,
    "INVALID_PASSWORD": errors.AUTH_WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": errors.AUTH_INVALID_CREDENTIAL,
    "INVALID_EMAIL": errors.AUTH_INVALID_EMAIL,
    "TOO_MANY_ATTEMPTS_TRY_LATER": errors.AUTH_TOO_MANY_REQUESTS,
    "USER_DISABLED": errors.AUTH_USER_DISABLED,
}


class IdentityResult:
    """Signed-in identity returned by the provider."""
    def __init__(self, uid: str, email: str, display_name: Optional[str] = None):
        self.uid = uid
        self.email = email
        self.display_name = display_name


def _provider_code(payload: dict) -> str:
    message = (payload.get("error") or {}).get("message", "")
    # e.g. "TOO_MANY_ATTEMPTS_TRY_LATER : Access to this account has been temporarily disabled"
    token = message.split(":")[0].strip()
    return PROVIDER_ERROR_CODES.get(token, errors.AUTH_INVALID_CREDENTIAL)


class IdentityClient:
    """HTTP client for the identity service."""

    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = settings.IDENTITY_API_URL
        self.api_key = settings.IDENTITY_API_KEY
        self.timeout = settings.IDENTITY_TIMEOUT
        self.mock_mode = settings.IDENTITY_MOCK_MODE
        self.transport = transport

    def sign_in(self, email: str, password: str, db: Optional[Session] = None) -> IdentityResult:
        """
        Verify credentials and return the signed-in identity.
        Raises AuthError with a provider-independent code on failure.
        """
        if "@" not in (email or ""):
            raise AuthError(errors.AUTH_INVALID_EMAIL)

        if self.mock_mode or not self.api_key:
            logger.debug("Using local identity check (mock_mode=%s)", self.mock_mode)
            return self._sign_in_local(email, password, db)

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(
                    f"{self.base_url}/accounts:signInWithPassword",
                    params={"key": self.api_key},
                    json={"email": email, "password": password, "returnSecureToken": True},
                )
        except httpx.TransportError as exc:
            logger.warning("Identity service unreachable: %s", exc)
            raise AuthError(errors.AUTH_NETWORK_FAILED, str(exc)) from exc

        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = {}
            code = _provider_code(payload)
            logger.info("Sign-in rejected for %s: %s", email, code)
            raise AuthError(code)

        payload = resp.json()
        return IdentityResult(
            uid=payload["localId"],
            email=payload.get("email", email),
            display_name=payload.get("displayName") or None,
        )

    def _sign_in_local(self, email: str, password: str, db: Optional[Session]) -> IdentityResult:
        if db is None:
            raise AuthError(errors.UNAVAILABLE, "local identity check needs a session")
        operator = db.query(Operator).filter(Operator.email == email).first()
        if operator is None:
            raise AuthError(errors.AUTH_USER_NOT_FOUND)
        if not verify_password(password, operator.hashed_password):
            raise AuthError(errors.AUTH_WRONG_PASSWORD)
        if not operator.is_active:
            raise AuthError(errors.AUTH_USER_DISABLED)
        return IdentityResult(uid=operator.id, email=operator.email, display_name=operator.full_name)


identity_client = IdentityClient()
