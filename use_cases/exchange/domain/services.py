"""
Domain Services - Business Operations.

These services build and mutate exchange records without I/O dependencies.
They use the validators for input checks and work with the domain models.
"""

from typing import Any, Dict, List, Optional

from core.domain import DomainService, parse_calendar_date, utc_now_iso
from core.errors import ValidationError

from .models import (
    ExchangeRequest,
    ProductImage,
    ShippingDetails,
    StatusHistoryEntry,
    Warehouse,
    new_id,
)
from .policies import (
    ExchangeRequestValidator,
    ShippingDetailsValidator,
    WarehouseValidator,
)


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class ExchangeRequestBuilder(DomainService):
    """
    Builds a validated, pending exchange request.

    Raises ValidationError listing every problem with the input.
    """

    def __init__(self):
        self.validator = ExchangeRequestValidator()

    def execute(
        self,
        owner_id: str,
        details: Dict[str, Any],
        images: List[Dict[str, Any]],
    ) -> ExchangeRequest:
        data = {**details, "images": images}
        errors = self.validator.validate(data)
        if errors:
            raise ValidationError.from_field_errors(errors)

        request = ExchangeRequest(
            id=new_id("EXC"),
            owner_id=owner_id,
            product_name=_clean(details["productName"]),
            brand=_clean(details["brand"]),
            condition=_clean(details["condition"]),
            description=_clean(details["description"]),
            images=[ProductImage(url=i["url"], external_id=i.get("externalId") or "") for i in images],
        )
        record_transition(request, "created", owner_id)
        return request


class ShippingDetailsBuilder(DomainService):
    """Builds validated shipping details; the date is normalised to YYYY-MM-DD."""

    def __init__(self):
        self.validator = ShippingDetailsValidator()

    def execute(self, data: Dict[str, Any]) -> ShippingDetails:
        errors = self.validator.validate(data)
        if errors:
            raise ValidationError.from_field_errors(errors)
        return ShippingDetails(
            carrier_name=_clean(data["carrierName"]),
            tracking_number=_clean(data["trackingNumber"]),
            shipping_date=parse_calendar_date(data["shippingDate"]).isoformat(),
            notes=_clean(data.get("notes")),
        )


class WarehouseBuilder(DomainService):
    """Creates or updates warehouses from API payloads."""

    def __init__(self):
        self.validator = WarehouseValidator()

    def execute(self, data: Dict[str, Any], existing: Optional[Warehouse] = None) -> Warehouse:
        merged = {**existing.to_dict(), **data} if existing else dict(data)
        errors = self.validator.validate(merged)
        if errors:
            raise ValidationError.from_field_errors(errors)

        now = utc_now_iso()
        return Warehouse(
            id=existing.id if existing else new_id("WH"),
            name=_clean(merged["name"]),
            address_line1=_clean(merged["addressLine1"]),
            address_line2=_clean(merged.get("addressLine2")),
            city=_clean(merged["city"]),
            state=_clean(merged["state"]),
            postal_code=_clean(merged["postalCode"]),
            country=_clean(merged["country"]),
            contact_person=_clean(merged.get("contactPerson")),
            contact_phone=_clean(merged.get("contactPhone")),
            is_active=merged.get("isActive", True),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )


def record_transition(request: ExchangeRequest, action: str, actor_id: str, note: str = "") -> None:
    """Stamp updatedAt and append the resulting state to the status history."""
    now = utc_now_iso()
    request.updated_at = now
    request.status_history.append(StatusHistoryEntry(
        action=action,
        status=request.status.value,
        transit_status=request.transit_status.value if request.transit_status else None,
        actor_id=actor_id,
        note=note,
        at=now,
    ))
