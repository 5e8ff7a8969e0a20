"""
HTTP routes for exchange requests, warehouses and credit.

Routes stay thin: resolve the caller, hand the payload to the lifecycle
manager or warehouse directory and serialize the result. Errors raised
below surface through the ExchangeError handler registered in main.py.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel

from auth import extract_bearer_token, get_user_id_from_token
from core.errors import AuthenticationError, ValidationError

from .bootstrap import ExchangeServices
from .domain.models import ExchangeStatus, TransitStatus


# =============================================================================
# REQUEST MODELS
# =============================================================================

class ImageBody(BaseModel):
    url: Optional[str] = None
    externalId: Optional[str] = None


class CreateExchangeBody(BaseModel):
    productName: Optional[str] = None
    brand: Optional[str] = None
    condition: Optional[str] = None
    description: Optional[str] = None
    images: List[ImageBody] = []


class ShippingBody(BaseModel):
    carrierName: Optional[str] = None
    trackingNumber: Optional[str] = None
    shippingDate: Optional[str] = None
    notes: Optional[str] = None


class StatusBody(BaseModel):
    status: str
    adminFeedback: Optional[str] = None
    warehouseId: Optional[str] = None


class TransitBody(BaseModel):
    transitStatus: str = TransitStatus.RECEIVED.value
    adminNote: Optional[str] = None


class CreditBody(BaseModel):
    creditAmount: Any = None
    additionalFeedback: Optional[str] = None


class CheckCustomerBody(BaseModel):
    email: Optional[str] = None


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_services(request: Request) -> ExchangeServices:
    return request.app.state.services


def current_user_id(request: Request) -> str:
    """Resolve the caller from the bearer token."""
    user_id = get_user_id_from_token(extract_bearer_token(request) or "")
    if not user_id:
        raise AuthenticationError("Authentication required")
    return user_id


# =============================================================================
# CUSTOMER ROUTES
# =============================================================================

exchange_router = APIRouter(prefix="/api/exchange", tags=["exchange"])


@exchange_router.post("", status_code=201)
async def create_exchange(
    body: CreateExchangeBody,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    """Submit a new exchange request."""
    details = body.model_dump(exclude={"images"})
    images = [image.model_dump() for image in body.images]
    return services.lifecycle.create(user_id, details, images).to_dict()


@exchange_router.get("")
async def list_my_exchanges(
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    return [r.to_dict() for r in services.lifecycle.list_for_owner(user_id)]


@exchange_router.get("/{request_id}")
async def get_exchange(
    request_id: str,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    return services.lifecycle.get(user_id, request_id).to_dict()


@exchange_router.post("/{request_id}/shipping")
async def submit_shipping(
    request_id: str,
    body: ShippingBody,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    """Record the shipment of an approved item to its warehouse."""
    return services.lifecycle.submit_shipping(user_id, request_id, body.model_dump()).to_dict()


@exchange_router.delete("/{request_id}")
async def cancel_exchange(
    request_id: str,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    """Withdraw a pending request."""
    request = services.lifecycle.cancel(user_id, request_id)
    return {**request.to_dict(), "deleted": True}


credit_router = APIRouter(prefix="/api/credit", tags=["credit"])


@credit_router.get("")
async def get_my_credit(
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    """The caller's loyalty-point balance in the commerce platform."""
    balance = await services.lifecycle.customer_credit(user_id)
    return {"creditAmount": balance.amount, "currency": balance.currency}


shopify_router = APIRouter(prefix="/api/shopify", tags=["shopify"])


@shopify_router.post("/check-customer")
async def check_customer(
    body: CheckCustomerBody,
    services: ExchangeServices = Depends(get_services),
):
    """Whether an email belongs to an existing Shopify customer; asked before signup."""
    lookup = await services.accounts.check_customer(body.email)
    return {"exists": lookup.exists}


# =============================================================================
# ADMINISTRATOR ROUTES
# =============================================================================

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


@admin_router.get("/exchange-requests")
async def list_exchange_requests(
    status: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    return [r.to_dict() for r in services.lifecycle.list_all(user_id, status)]


@admin_router.get("/exchange-requests/{request_id}")
async def get_exchange_request(
    request_id: str,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    services.access.require_admin(user_id)
    return services.lifecycle.get(user_id, request_id).to_dict()


@admin_router.put("/exchange-requests/{request_id}/status")
async def update_status(
    request_id: str,
    body: StatusBody,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    """Approve, decline or complete an exchange."""
    if body.status == ExchangeStatus.COMPLETED.value:
        request = services.lifecycle.complete(user_id, request_id, body.adminFeedback or "")
    elif body.status in (ExchangeStatus.APPROVED.value, ExchangeStatus.DECLINED.value):
        request = services.lifecycle.decide(
            user_id, request_id, body.status, body.adminFeedback or "", body.warehouseId,
        )
    else:
        raise ValidationError(f"Invalid status '{body.status}'. Must be one of: approved, declined, completed")
    return request.to_dict()


@admin_router.put("/exchange-requests/{request_id}/transit")
async def update_transit(
    request_id: str,
    body: TransitBody,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    """Mark a shipped item as received at the warehouse."""
    if body.transitStatus != TransitStatus.RECEIVED.value:
        raise ValidationError("Only transitStatus 'received' can be set by an administrator")
    return services.lifecycle.mark_received(user_id, request_id, body.adminNote or "").to_dict()


@admin_router.put("/exchange-requests/{request_id}/credit")
async def assign_credit(
    request_id: str,
    body: CreditBody,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    """
    Assign loyalty points. A ledger failure still returns 200 with the
    updated record and a "warning" describing what failed.
    """
    result = await services.lifecycle.assign_credit(
        user_id, request_id, body.creditAmount, body.additionalFeedback or "",
    )
    result.raise_if_rejected()
    response = result.request.to_dict()
    response["creditOutcome"] = result.outcome.value
    if result.warning:
        response["warning"] = result.warning
    return response


@admin_router.delete("/exchange-requests/{request_id}")
async def delete_exchange_request(
    request_id: str,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    request = services.lifecycle.admin_delete(user_id, request_id)
    return {**request.to_dict(), "deleted": True}


@admin_router.get("/credit-history")
async def credit_history(
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    return [entry.to_dict() for entry in services.lifecycle.credit_history(user_id)]


# ----- Warehouses -----

@admin_router.get("/warehouses")
async def list_warehouses(
    active: bool = False,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    return [w.to_dict() for w in services.warehouses.list(user_id, active_only=active)]


@admin_router.post("/warehouses", status_code=201)
async def create_warehouse(
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    return services.warehouses.create(user_id, payload).to_dict()


@admin_router.get("/warehouses/{warehouse_id}")
async def get_warehouse(
    warehouse_id: str,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    return services.warehouses.get(user_id, warehouse_id).to_dict()


@admin_router.put("/warehouses/{warehouse_id}")
async def update_warehouse(
    warehouse_id: str,
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    return services.warehouses.update(user_id, warehouse_id, payload).to_dict()


@admin_router.delete("/warehouses/{warehouse_id}")
async def delete_warehouse(
    warehouse_id: str,
    user_id: str = Depends(current_user_id),
    services: ExchangeServices = Depends(get_services),
):
    services.warehouses.delete(user_id, warehouse_id)
    return {"success": True, "id": warehouse_id}
