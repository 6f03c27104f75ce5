"""
Access logging for patient-data endpoints.
Every request to a path that exposes patient data is logged with the operator
resolved from the bearer token.
"""
import logging
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from ..core.security import decode_access_token

logger = logging.getLogger("pharmadesk.access")

# Endpoints that touch patient data
PATIENT_DATA_PREFIXES = (
    "/api/v1/patients",
    "/api/v1/prescriptions",
    "/api/v1/conversations",
    "/api/v1/messaging",
)

ACTION_MAP = {
    "GET": "view",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


def operator_from_headers(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        payload = decode_access_token(auth_header[7:])
        if payload:
            return payload.get("sub", "anonymous")
    return "anonymous"


def resource_from_path(path: str):
    """``/api/v1/patients/abc`` -> ``("patients", "abc")``."""
    parts = [p for p in path.split("/") if p]
    resource_type = parts[2] if len(parts) >= 3 else "unknown"
    resource_id = parts[3] if len(parts) >= 4 else None
    return resource_type, resource_id


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Logs who touched which patient-data resource."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)

        path = request.url.path
        if not any(path.startswith(prefix) for prefix in PATIENT_DATA_PREFIXES):
            return response
        if request.method not in ACTION_MAP:
            return response

        resource_type, resource_id = resource_from_path(path)
        logger.info(
            "operator=%s action=%s resource=%s id=%s status=%s ip=%s duration_ms=%.1f",
            operator_from_headers(request),
            ACTION_MAP[request.method],
            resource_type,
            resource_id or "-",
            response.status_code,
            request.client.host if request.client else "-",
            (time.perf_counter() - started) * 1000,
        )
        return response
