"""
Error taxonomy for PharmaDesk.

Domain errors are raised by services and mapped to HTTP responses by the
handlers registered in ``main.py``. Messages shown to operators come from a
fixed table keyed by error code, never from the raw provider message.
"""
from typing import Optional

# Auth errors
AUTH_USER_NOT_FOUND = "auth/user-not-found"
AUTH_WRONG_PASSWORD = "auth/wrong-password"
AUTH_INVALID_CREDENTIAL = "auth/invalid-credential"
AUTH_INVALID_EMAIL = "auth/invalid-email"
AUTH_TOO_MANY_REQUESTS = "auth/too-many-requests"
AUTH_NETWORK_FAILED = "auth/network-request-failed"
AUTH_EMAIL_IN_USE = "auth/email-already-in-use"
AUTH_USER_DISABLED = "auth/user-disabled"

# Data errors
PERMISSION_DENIED = "permission-denied"
UNAVAILABLE = "unavailable"
NOT_FOUND = "not-found"

ERROR_MESSAGES = {
    AUTH_USER_NOT_FOUND: "Invalid email or password. Please try again.",
    AUTH_WRONG_PASSWORD: "Invalid email or password. Please try again.",
    AUTH_INVALID_CREDENTIAL: "Invalid email or password. Please try again.",
    AUTH_INVALID_EMAIL: "Invalid email format.",
    AUTH_TOO_MANY_REQUESTS: "Too many failed login attempts. Please try again later.",
    AUTH_NETWORK_FAILED: "Network error. Please check your internet connection.",
    AUTH_EMAIL_IN_USE: "This email is already in use. Please use a different email.",
    AUTH_USER_DISABLED: "This account has been disabled.",
    PERMISSION_DENIED: "You do not have permission to access this data.",
    UNAVAILABLE: "The service is currently unavailable. Please try again later.",
    NOT_FOUND: "The requested document was not found.",
}

DEFAULT_MESSAGE = "An error occurred. Please try again."
UNKNOWN_MESSAGE = "An unknown error occurred"


def format_error(code: Optional[str]) -> str:
    """Return the operator-facing message for an error code."""
    if not code:
        return UNKNOWN_MESSAGE
    return ERROR_MESSAGES.get(code, DEFAULT_MESSAGE)


class PharmaDeskError(Exception):
    """Base class for domain errors."""
    code: str = UNAVAILABLE

    @property
    def user_message(self) -> str:
        return format_error(self.code)


class AuthError(PharmaDeskError):
    """Sign-in failed; ``code`` selects the message shown to the operator."""

    def __init__(self, code: str, detail: Optional[str] = None):
        super().__init__(detail or code)
        self.code = code


class NotFoundError(PharmaDeskError):
    """The document being operated on no longer exists."""
    code = NOT_FOUND

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class InvalidStatusError(PharmaDeskError, ValueError):
    """A prescription status value matches no known spelling."""
    code = "invalid-status"

    def __init__(self, value):
        super().__init__(f"Unknown prescription status: {value!r}")
        self.value = value

    @property
    def user_message(self) -> str:
        return str(self)
