"""
Error taxonomy surfaced to API callers

Each error carries a stable numeric code, a category string and the HTTP
status it maps to. Concrete causes of internal errors are logged where they
happen and never leak into the message.
"""

from typing import Optional


class CoachError(Exception):
    """Base class for errors that are reported to the caller as-is"""

    code = 10000
    category = "INTERNAL_ERROR"
    status_code = 500
    default_message = "internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self, request_id: str = "unknown") -> dict:
        return {
            "code": self.code,
            "category": self.category,
            "message": self.message,
            "requestId": request_id,
        }


class InternalError(CoachError):
    pass


class ParamMissingError(CoachError):
    code = 20001
    category = "INVALID_ARGUMENT"
    status_code = 400
    default_message = "param missing"


class ParamInvalidError(CoachError):
    code = 20002
    category = "INVALID_ARGUMENT"
    status_code = 400
    default_message = "param invalid"


class NotFoundError(CoachError):
    code = 40400
    category = "NOT_FOUND"
    status_code = 404
    default_message = "not found"


class UnauthenticatedError(CoachError):
    code = 40100
    category = "UNAUTHENTICATED"
    status_code = 401
    default_message = "unauthenticated"


def parse_id(value, field: str = "id", required: bool = True) -> int:
    """Parse an id given as string or int; 0 is returned for empty optional ids"""
    if value is None or value == "":
        if required:
            raise ParamMissingError(f"{field} is required")
        return 0
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ParamInvalidError(f"{field} must be a numeric id")
    if parsed < 0 or (required and parsed == 0):
        raise ParamInvalidError(f"{field} must be a positive id")
    return parsed
