# errors.py: Error catalogue shared by every service and the HTTP layer
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ErrorDefinition(BaseModel):
    """One stable, machine-readable error as returned to callers"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    code: str
    message: str
    status_code: int


# ============================================================
# ERROR CODE CATALOGUE
# Domains: AUTH, ORGANIZATION, PROJECT, VALIDATION, PERMISSION, SERVER, GENERIC
# ============================================================

ERROR_CATALOGUE: Dict[str, List[ErrorDefinition]] = {
    "AUTH": [
        ErrorDefinition(code="TOKEN_EXPIRED", message="Authentication token has expired", status_code=401),
        ErrorDefinition(code="TOKEN_MISSING", message="Authentication token is required", status_code=401),
        ErrorDefinition(code="SESSION_EXPIRED", message="Session has expired", status_code=401),
        ErrorDefinition(code="USER_NOT_FOUND", message="User account not found", status_code=404),
    ],
    "ORGANIZATION": [
        ErrorDefinition(code="ORG_NOT_FOUND", message="Organization not found", status_code=404),
        ErrorDefinition(code="DEVICE_NOT_FOUND", message="Device registration not found", status_code=404),
    ],
    "PROJECT": [
        ErrorDefinition(code="PROJECT_NOT_FOUND", message="Project not found", status_code=404),
    ],
    "VALIDATION": [
        ErrorDefinition(code="VALIDATION_ERROR", message="Validation failed", status_code=400),
    ],
    "PERMISSION": [
        ErrorDefinition(code="ACCESS_DENIED", message="Access denied to this resource", status_code=403),
    ],
    "SERVER": [
        ErrorDefinition(code="INTERNAL_ERROR", message="Internal server error", status_code=500),
        ErrorDefinition(code="DATABASE_ERROR", message="Database connection error", status_code=503),
        ErrorDefinition(code="TOO_MANY_REQUESTS", message="Too many requests", status_code=429),
    ],
    "GENERIC": [
        ErrorDefinition(code="NOT_FOUND", message="Resource not found", status_code=404),
        ErrorDefinition(code="BAD_REQUEST", message="Bad request", status_code=400),
        ErrorDefinition(code="UNKNOWN_ERROR", message="Unknown error occurred", status_code=500),
        ErrorDefinition(code="FORBIDDEN", message="Forbidden", status_code=403),
    ],
}

_BY_CODE: Dict[str, ErrorDefinition] = {
    err.code: err for errors in ERROR_CATALOGUE.values() for err in errors
}

# HTTP status -> catalogue code, for exceptions raised outside the services
STATUS_TO_CODE: Dict[int, str] = {
    400: "BAD_REQUEST",
    401: "TOKEN_EXPIRED",
    403: "ACCESS_DENIED",
    404: "NOT_FOUND",
    422: "VALIDATION_ERROR",
    429: "TOO_MANY_REQUESTS",
}


def find_error(code: str) -> Optional[ErrorDefinition]:
    return _BY_CODE.get(code)


def get_error_by_code(code: str) -> ErrorDefinition:
    """Look up a catalogue entry; unknown codes collapse to UNKNOWN_ERROR"""
    return _BY_CODE.get(code) or _BY_CODE["UNKNOWN_ERROR"]


def all_errors() -> List[ErrorDefinition]:
    return list(_BY_CODE.values())
