"""
Domain Layer Base Classes.

The domain layer contains pure business logic with no external dependencies.
This makes business rules:
- Easy to test (no mocking needed)
- Reusable across different interfaces
- Clear and self-documenting

Example Usage:
    class ShippingAllowedPolicy(PolicyEngine):
        def evaluate(self, context: dict) -> PolicyDecision:
            # Pure business logic here
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from datetime import date, datetime, timezone
from enum import Enum


class PolicyResult(Enum):
    """Result of a policy evaluation."""
    APPROVED = "approved"
    DENIED = "denied"


@dataclass
class PolicyDecision:
    """
    The outcome of a policy evaluation.

    Attributes:
        result: The policy decision result
        reason: Human-readable explanation
        field_name: The record field the decision is about (for denials)
        current: The state that was observed
        required: The state the operation needs
    """
    result: PolicyResult
    reason: str
    field_name: Optional[str] = None
    current: Any = None
    required: Any = None

    @property
    def is_approved(self) -> bool:
        return self.result == PolicyResult.APPROVED

    @property
    def is_denied(self) -> bool:
        return self.result == PolicyResult.DENIED

    @classmethod
    def allow(cls, reason: str = "Allowed") -> "PolicyDecision":
        return cls(result=PolicyResult.APPROVED, reason=reason)

    @classmethod
    def deny(cls, field_name: str, current: Any, required: Any, reason: str) -> "PolicyDecision":
        return cls(
            result=PolicyResult.DENIED,
            reason=reason,
            field_name=field_name,
            current=current,
            required=required,
        )


class PolicyEngine(ABC):
    """
    Abstract base class for policy engines.

    A PolicyEngine encapsulates a set of business rules that can be
    evaluated against a context to produce a decision.

    Example:
        class CompletionPolicy(PolicyEngine):
            def evaluate(self, context: dict) -> PolicyDecision:
                if not context.get("credit_amount"):
                    return PolicyDecision.deny(
                        "creditAmount", None, "> 0",
                        "Credit must be assigned before completing",
                    )
                return PolicyDecision.allow()
    """

    @abstractmethod
    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        """
        Evaluate the policy against the given context.

        Args:
            context: Dictionary containing all data needed for evaluation

        Returns:
            PolicyDecision with the result and explanation
        """
        pass


class DomainService(ABC):
    """
    Abstract base class for domain services.

    Domain services contain business logic that doesn't belong to a single entity.

    Key principles:
    - No I/O operations (database, network, file)
    - All dependencies passed as parameters
    - Return domain objects, not DTOs
    """

    @abstractmethod
    def execute(self, *args, **kwargs) -> Any:
        """
        Execute the domain service operation.

        Implementation should contain pure business logic only.
        """
        pass


@dataclass
class FieldError:
    """A validation error with field and message."""
    field: str
    message: str
    code: str = "invalid"

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}


class Validator(ABC):
    """
    Abstract base class for validators.

    Validators check that data meets business requirements before processing.
    """

    @abstractmethod
    def validate(self, data: Dict[str, Any]) -> List[FieldError]:
        """
        Validate the data and return any errors.

        Args:
            data: The data to validate

        Returns:
            List of FieldError objects (empty if valid)
        """
        pass

    def is_valid(self, data: Dict[str, Any]) -> bool:
        """Check if data is valid."""
        return len(self.validate(data)) == 0


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return utc_now().isoformat()


def parse_date(date_string: str) -> Optional[datetime]:
    """Parse an ISO format date string safely."""
    if not date_string:
        return None
    try:
        if "Z" in date_string:
            return datetime.fromisoformat(date_string.replace("Z", "+00:00"))
        elif "+" in date_string:
            return datetime.fromisoformat(date_string)
        else:
            return datetime.fromisoformat(date_string).replace(tzinfo=timezone.utc)
    except (ValueError, TypeError):
        return None


def parse_calendar_date(value: Any) -> Optional[date]:
    """Parse a YYYY-MM-DD value (or full timestamp) into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        parsed = parse_date(value.strip())
        return parsed.date() if parsed else None
