"""
Error Types.

Every rejected operation raises one of these. Each carries a stable,
human-readable message and the HTTP status the API layer responds with.
"""

from typing import Any, Dict, List, Optional

from .domain import FieldError


class ExchangeError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(ExchangeError):
    """Malformed or missing input."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[List[FieldError]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_field_errors(cls, errors: List[FieldError]) -> "ValidationError":
        message = "; ".join(e.message for e in errors) or "Invalid input"
        return cls(message, errors)

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.errors:
            body["details"] = [e.to_dict() for e in self.errors]
        return body


class AuthenticationError(ExchangeError):
    """No valid caller identity."""

    status_code = 401


class AuthorizationError(ExchangeError):
    """Caller lacks the required capability."""

    status_code = 403


class NotFoundError(ExchangeError):
    """No such record or warehouse."""

    status_code = 404


class StateError(ExchangeError):
    """
    Operation is illegal for the record's current state.

    Names the offending field together with the observed and required state.
    """

    status_code = 409

    def __init__(self, field: str, current: Any, required: Any, message: Optional[str] = None):
        self.field = field
        self.current = current
        self.required = required
        if message is None:
            message = f"Cannot do this yet: {field} is '{current}', requires {required}"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["field"] = self.field
        body["current"] = self.current
        body["required"] = self.required
        return body


class ConcurrencyConflict(StateError):
    """The record changed underneath the operation and retries were exhausted."""

    def __init__(self, request_id: str):
        super().__init__(
            field="_etag",
            current="modified",
            required="unmodified",
            message=f"Exchange request {request_id} was modified concurrently, please retry",
        )


class GatewayError(ExchangeError):
    """External ledger unreachable or rejected the call."""

    status_code = 502



class DuplicateAccountError(ExchangeError):
    """An account already exists for this email address."""

    status_code = 409
