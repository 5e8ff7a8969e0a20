"""
Exchange Policies - Pure Business Rules.

Each transition of an exchange request is guarded by one policy. Policies
have NO dependencies on databases or external services; the record being
checked is passed in the context as "request".

A denial names the offending field together with the observed and the
required state, so callers can tell "not yet" apart from "never".
"""

from typing import Any, Dict, List

from core.domain import (
    FieldError,
    PolicyDecision,
    PolicyEngine,
    Validator,
    parse_calendar_date,
)

from .models import ExchangeRequest, ExchangeStatus, TransitStatus


# =============================================================================
# CONFIGURATION
# =============================================================================

MIN_IMAGES = 1
MAX_IMAGES = 5

REQUIRED_PRODUCT_FIELDS = ["productName", "brand", "condition", "description"]

REQUIRED_SHIPPING_FIELDS = ["carrierName", "trackingNumber", "shippingDate"]

REQUIRED_WAREHOUSE_FIELDS = ["name", "addressLine1", "city", "state", "postalCode", "country"]

DECISIONS = [ExchangeStatus.APPROVED.value, ExchangeStatus.DECLINED.value]

MIN_PASSWORD_LENGTH = 6


def _transit(request: ExchangeRequest) -> str:
    return request.transit_status.value if request.transit_status else "unset"


# =============================================================================
# TRANSITION POLICIES
# =============================================================================

class DecisionPolicy(PolicyEngine):
    """Approve or decline is only possible while the request is pending."""

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        request: ExchangeRequest = context["request"]
        if request.status != ExchangeStatus.PENDING:
            return PolicyDecision.deny(
                "status", request.status.value, "pending",
                f"Exchange request has already been {request.status.value}",
            )
        return PolicyDecision.allow()


class ShippingPolicy(PolicyEngine):
    """Shipping details are submitted once, after approval."""

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        request: ExchangeRequest = context["request"]
        if request.status != ExchangeStatus.APPROVED:
            return PolicyDecision.deny(
                "status", request.status.value, "approved",
                "Shipping details can only be submitted for approved exchanges",
            )
        if request.shipping_details is not None:
            return PolicyDecision.deny(
                "shippingDetails", "set", "unset",
                "Shipping details have already been submitted",
            )
        return PolicyDecision.allow()


class ReceiptPolicy(PolicyEngine):
    """The warehouse can only receive an item that was shipped."""

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        request: ExchangeRequest = context["request"]
        if request.shipping_details is None:
            return PolicyDecision.deny(
                "shippingDetails", "unset", "set",
                "The customer has not submitted shipping details yet",
            )
        if request.transit_status == TransitStatus.RECEIVED:
            return PolicyDecision.deny(
                "transitStatus", "received", "not received",
                "The item has already been marked as received",
            )
        return PolicyDecision.allow()


class CreditPolicy(PolicyEngine):
    """Credit is assigned exactly once, after the item arrives."""

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        request: ExchangeRequest = context["request"]
        if request.transit_status != TransitStatus.RECEIVED:
            return PolicyDecision.deny(
                "transitStatus", _transit(request), "received",
                "Credit can only be assigned after the item has been received",
            )
        if request.credit_assigned:
            return PolicyDecision.deny(
                "creditAmount", request.credit_amount, "unset",
                "Credit has already been assigned to this exchange",
            )
        return PolicyDecision.allow()


class CompletionPolicy(PolicyEngine):
    """An exchange completes only once it is approved, received and credited."""

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        request: ExchangeRequest = context["request"]
        if request.status != ExchangeStatus.APPROVED:
            return PolicyDecision.deny(
                "status", request.status.value, "approved",
                f"A {request.status.value} exchange cannot be completed",
            )
        if request.transit_status != TransitStatus.RECEIVED:
            return PolicyDecision.deny(
                "transitStatus", _transit(request), "received",
                "The item must be received before the exchange is completed",
            )
        if not request.credit_amount or request.credit_amount <= 0:
            return PolicyDecision.deny(
                "creditAmount", request.credit_amount, "> 0",
                "You must assign credit before completing the exchange",
            )
        return PolicyDecision.allow()


class CancellationPolicy(PolicyEngine):
    """Owners may withdraw a request only before it is reviewed."""

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        request: ExchangeRequest = context["request"]
        if request.status != ExchangeStatus.PENDING:
            return PolicyDecision.deny(
                "status", request.status.value, "pending",
                "Only pending exchange requests can be cancelled",
            )
        return PolicyDecision.allow()


class AdminDeletePolicy(PolicyEngine):
    """
    Administrators may delete in any state.

    Deleting a completed exchange leaves no record beyond the logs, so it can
    be switched off with allow_completed=False.
    """

    def __init__(self, allow_completed: bool = True):
        self.allow_completed = allow_completed

    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        request: ExchangeRequest = context["request"]
        if request.status == ExchangeStatus.COMPLETED and not self.allow_completed:
            return PolicyDecision.deny(
                "status", "completed", "not completed",
                "Completed exchanges cannot be deleted",
            )
        return PolicyDecision.allow()


# =============================================================================
# VALIDATORS
# =============================================================================

class ExchangeRequestValidator(Validator):
    """Validates a new exchange request before it is stored."""

    def validate(self, data: Dict[str, Any]) -> List[FieldError]:
        errors = []

        for field in REQUIRED_PRODUCT_FIELDS:
            value = data.get(field)
            if not isinstance(value, str) or not value.strip():
                errors.append(FieldError(field=field, message=f"{field} is required", code="required"))

        images = data.get("images") or []
        if not isinstance(images, list) or len(images) < MIN_IMAGES:
            errors.append(FieldError(
                field="images",
                message="Please upload at least one image of the product",
                code="min_length",
            ))
        elif len(images) > MAX_IMAGES:
            errors.append(FieldError(
                field="images",
                message=f"At most {MAX_IMAGES} images are allowed",
                code="max_length",
            ))
        else:
            for i, image in enumerate(images):
                if not isinstance(image, dict) or not image.get("url"):
                    errors.append(FieldError(
                        field=f"images[{i}].url",
                        message="Image URL is required",
                        code="required",
                    ))

        return errors


class ShippingDetailsValidator(Validator):
    """Validates the shipment details a customer submits."""

    def validate(self, data: Dict[str, Any]) -> List[FieldError]:
        errors = []

        for field in REQUIRED_SHIPPING_FIELDS:
            value = data.get(field)
            if not isinstance(value, str) or not value.strip():
                errors.append(FieldError(field=field, message=f"{field} is required", code="required"))

        shipping_date = data.get("shippingDate")
        if shipping_date and parse_calendar_date(shipping_date) is None:
            errors.append(FieldError(
                field="shippingDate",
                message="shippingDate must be a date in YYYY-MM-DD format",
                code="invalid_date",
            ))

        return errors


class DecisionValidator(Validator):
    """Validates an administrator's approve/decline decision."""

    def validate(self, data: Dict[str, Any]) -> List[FieldError]:
        errors = []
        decision = data.get("decision")
        if decision not in DECISIONS:
            errors.append(FieldError(
                field="status",
                message=f"Invalid decision. Must be one of: {', '.join(DECISIONS)}",
                code="invalid_choice",
            ))
        elif decision == ExchangeStatus.APPROVED.value and not data.get("warehouseId"):
            errors.append(FieldError(
                field="warehouseId",
                message="Please select a warehouse for shipping the product",
                code="required",
            ))
        return errors


class CreditAmountValidator(Validator):
    """Loyalty points are whole, non-negative numbers."""

    def validate(self, data: Dict[str, Any]) -> List[FieldError]:
        amount = data.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            return [FieldError(field="creditAmount", message="Please enter a valid credit amount", code="invalid")]
        if isinstance(amount, float) and not amount.is_integer():
            return [FieldError(field="creditAmount", message="Credit amount must be a whole number of points", code="invalid")]
        if amount < 0:
            return [FieldError(field="creditAmount", message="Credit amount cannot be negative", code="min_value")]
        return []


class WarehouseValidator(Validator):
    """Validates warehouse data on create and update."""

    def validate(self, data: Dict[str, Any]) -> List[FieldError]:
        errors = []
        for field in REQUIRED_WAREHOUSE_FIELDS:
            value = data.get(field)
            if not isinstance(value, str) or not value.strip():
                errors.append(FieldError(field=field, message=f"{field} is required", code="required"))
        if "isActive" in data and not isinstance(data["isActive"], bool):
            errors.append(FieldError(field="isActive", message="isActive must be true or false", code="invalid"))
        return errors


class RegistrationValidator(Validator):
    """Validates a self-service signup."""

    def validate(self, data: Dict[str, Any]) -> List[FieldError]:
        errors = []
        email = data.get("email")
        if not isinstance(email, str) or "@" not in email.strip():
            errors.append(FieldError(field="email", message="A valid email address is required", code="invalid_email"))

        password = data.get("password")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            errors.append(FieldError(
                field="password",
                message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                code="min_length",
            ))
        return errors
