"""
Exchange Domain Models.

Plain dataclasses for the exchange aggregate and its reference data.
Documents are stored with camelCase keys, which is also the JSON shape
returned by the API.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from core.domain import utc_now_iso


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


class ExchangeStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    COMPLETED = "completed"


class TransitStatus(str, Enum):
    NOT_STARTED = "not_started"
    SHIPPED = "shipped"
    RECEIVED = "received"


@dataclass
class ProductImage:
    url: str
    external_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "externalId": self.external_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductImage":
        return cls(url=data.get("url", ""), external_id=data.get("externalId", ""))


@dataclass
class ShippingDetails:
    carrier_name: str
    tracking_number: str
    shipping_date: str
    notes: str = ""
    submitted_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "carrierName": self.carrier_name,
            "trackingNumber": self.tracking_number,
            "shippingDate": self.shipping_date,
            "notes": self.notes,
            "submittedAt": self.submitted_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShippingDetails":
        return cls(
            carrier_name=data.get("carrierName", ""),
            tracking_number=data.get("trackingNumber", ""),
            shipping_date=data.get("shippingDate", ""),
            notes=data.get("notes", ""),
            submitted_at=data.get("submittedAt", ""),
        )


@dataclass
class StatusHistoryEntry:
    """One recorded transition of an exchange request."""
    action: str
    status: str
    transit_status: Optional[str]
    actor_id: str
    note: str = ""
    at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "status": self.status,
            "transitStatus": self.transit_status,
            "actorId": self.actor_id,
            "note": self.note,
            "at": self.at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusHistoryEntry":
        return cls(
            action=data.get("action", ""),
            status=data.get("status", ""),
            transit_status=data.get("transitStatus"),
            actor_id=data.get("actorId", ""),
            note=data.get("note", ""),
            at=data.get("at", ""),
        )


@dataclass
class ExchangeRequest:
    """A customer's request to trade a physical product for store credit."""
    id: str
    owner_id: str
    product_name: str
    brand: str
    condition: str
    description: str
    images: List[ProductImage]
    status: ExchangeStatus = ExchangeStatus.PENDING
    transit_status: Optional[TransitStatus] = None
    shipping_details: Optional[ShippingDetails] = None
    warehouse_id: Optional[str] = None
    warehouse_info: Optional[Dict[str, Any]] = None
    credit_amount: Optional[int] = None
    admin_feedback: str = ""
    status_history: List[StatusHistoryEntry] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    @property
    def credit_assigned(self) -> bool:
        return self.credit_amount is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence and API responses."""
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "productName": self.product_name,
            "brand": self.brand,
            "condition": self.condition,
            "description": self.description,
            "images": [image.to_dict() for image in self.images],
            "status": self.status.value,
            "transitStatus": self.transit_status.value if self.transit_status else None,
            "shippingDetails": self.shipping_details.to_dict() if self.shipping_details else None,
            "warehouseId": self.warehouse_id,
            "warehouseInfo": self.warehouse_info,
            "creditAmount": self.credit_amount,
            "adminFeedback": self.admin_feedback,
            "statusHistory": [entry.to_dict() for entry in self.status_history],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExchangeRequest":
        transit = data.get("transitStatus")
        shipping = data.get("shippingDetails")
        return cls(
            id=data["id"],
            owner_id=data["ownerId"],
            product_name=data.get("productName", ""),
            brand=data.get("brand", ""),
            condition=data.get("condition", ""),
            description=data.get("description", ""),
            images=[ProductImage.from_dict(i) for i in data.get("images", [])],
            status=ExchangeStatus(data.get("status", ExchangeStatus.PENDING.value)),
            transit_status=TransitStatus(transit) if transit else None,
            shipping_details=ShippingDetails.from_dict(shipping) if shipping else None,
            warehouse_id=data.get("warehouseId"),
            warehouse_info=data.get("warehouseInfo"),
            credit_amount=data.get("creditAmount"),
            admin_feedback=data.get("adminFeedback") or "",
            status_history=[StatusHistoryEntry.from_dict(e) for e in data.get("statusHistory", [])],
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class Warehouse:
    """A shipping destination selected by an administrator at approval time."""
    id: str
    name: str
    address_line1: str
    city: str
    state: str
    postal_code: str
    country: str
    address_line2: str = ""
    contact_person: str = ""
    contact_phone: str = ""
    is_active: bool = True
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    # Fields copied into an exchange request when it is approved
    SNAPSHOT_FIELDS = (
        "name", "addressLine1", "addressLine2", "city", "state",
        "postalCode", "country", "contactPerson", "contactPhone",
    )

    def snapshot(self) -> Dict[str, Any]:
        """Address snapshot stored on the exchange request at approval."""
        data = self.to_dict()
        return {key: data[key] for key in self.SNAPSHOT_FIELDS}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "addressLine1": self.address_line1,
            "addressLine2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "postalCode": self.postal_code,
            "country": self.country,
            "contactPerson": self.contact_person,
            "contactPhone": self.contact_phone,
            "isActive": self.is_active,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Warehouse":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            address_line1=data.get("addressLine1", ""),
            address_line2=data.get("addressLine2") or "",
            city=data.get("city", ""),
            state=data.get("state", ""),
            postal_code=data.get("postalCode", ""),
            country=data.get("country", ""),
            contact_person=data.get("contactPerson") or "",
            contact_phone=data.get("contactPhone") or "",
            # Warehouses created before the flag existed count as active
            is_active=data.get("isActive") is not False,
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class CreditLedgerEntry:
    """Audit record of one attempt to post credit to the external ledger."""
    id: str
    exchange_request_id: str
    user_id: str
    amount: int
    currency: str
    loyalty_points_success: bool
    external_transaction_id: Optional[str] = None
    error: Optional[str] = None
    type: str = "exchange_credit"
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "exchangeRequestId": self.exchange_request_id,
            "userId": self.user_id,
            "amount": self.amount,
            "currency": self.currency,
            "type": self.type,
            "loyaltyPointsSuccess": self.loyalty_points_success,
            "externalTransactionId": self.external_transaction_id,
            "error": self.error,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreditLedgerEntry":
        return cls(
            id=data["id"],
            exchange_request_id=data.get("exchangeRequestId", ""),
            user_id=data.get("userId", ""),
            amount=data.get("amount", 0),
            currency=data.get("currency", ""),
            loyalty_points_success=bool(data.get("loyaltyPointsSuccess")),
            external_transaction_id=data.get("externalTransactionId"),
            error=data.get("error"),
            type=data.get("type", "exchange_credit"),
            created_at=data.get("createdAt", ""),
        )


@dataclass
class UserProfile:
    """A customer or administrator account; the system of record for admin status."""
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False
    password_hash: str = ""
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "isAdmin": self.is_admin,
            "passwordHash": self.password_hash,
            "createdAt": self.created_at,
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """Profile as returned to clients (no credential material)."""
        data = self.to_dict()
        data.pop("passwordHash")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=data["id"],
            email=data.get("email", ""),
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            is_admin=data.get("isAdmin") is True,
            password_hash=data.get("passwordHash", ""),
            created_at=data.get("createdAt", ""),
        )
