"""
Exchange Lifecycle Manager.

Validates and applies every state transition of an exchange request:

    pending -> approved -> (shipped) -> received -> credited -> completed
            -> declined

Every transition re-reads the record, checks authorization and the guarding
policy against that fresh state, applies one mutation and writes it back with
a compare-and-swap on the record's ETag. A lost race re-runs the whole check,
so two concurrent administrators can never both satisfy a stale precondition.

assign_credit is the one operation with a side effect outside the record
store. The local credit is written first; the ledger post follows and its
outcome, success or failure, is recorded in the credit history. A ledger
failure does not roll back the local credit, it is reported as a warning.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.data import DocumentNotFound, PreconditionFailed, Versioned
from core.domain import PolicyEngine
from core.errors import (
    ConcurrencyConflict,
    ExchangeError,
    GatewayError,
    NotFoundError,
    StateError,
    ValidationError,
)

from .access import AccessControl
from .domain.models import (
    CreditLedgerEntry,
    ExchangeRequest,
    ExchangeStatus,
    TransitStatus,
    new_id,
)
from .domain.policies import (
    AdminDeletePolicy,
    CancellationPolicy,
    CompletionPolicy,
    CreditAmountValidator,
    CreditPolicy,
    DecisionPolicy,
    DecisionValidator,
    ReceiptPolicy,
    ShippingPolicy,
)
from .domain.services import ExchangeRequestBuilder, ShippingDetailsBuilder, record_transition
from .ledger import BalanceResult, CreditLedgerGateway, CreditPostResult
from .repositories import Repositories
from .warehouses import WarehouseDirectory

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("exchange.audit")


class CreditOutcome(str, Enum):
    APPLIED = "applied"
    APPLIED_WITH_GATEWAY_WARNING = "applied_with_gateway_warning"
    REJECTED = "rejected"


@dataclass
class CreditAssignment:
    """Tagged result of assign_credit."""
    outcome: CreditOutcome
    request: Optional[ExchangeRequest] = None
    ledger_entry: Optional[CreditLedgerEntry] = None
    warning: Optional[str] = None
    error: Optional[ExchangeError] = None

    @property
    def applied(self) -> bool:
        return self.outcome != CreditOutcome.REJECTED

    def raise_if_rejected(self) -> None:
        if self.error is not None:
            raise self.error


class ExchangeLifecycleManager:
    """Coordinates exchange transitions, authorization and ledger side effects."""

    def __init__(
        self,
        repositories: Repositories,
        ledger: CreditLedgerGateway,
        access: Optional[AccessControl] = None,
        warehouses: Optional[WarehouseDirectory] = None,
        ledger_timeout: float = 10.0,
        allow_admin_delete_completed: bool = True,
        max_attempts: int = 3,
    ):
        self._repos = repositories
        self._ledger = ledger
        self._access = access or AccessControl(repositories.users)
        self._warehouses = warehouses or WarehouseDirectory(repositories.warehouses, self._access)
        self._ledger_timeout = ledger_timeout
        self._max_attempts = max(1, max_attempts)

        self._builder = ExchangeRequestBuilder()
        self._shipping_builder = ShippingDetailsBuilder()
        self._decision_policy = DecisionPolicy()
        self._shipping_policy = ShippingPolicy()
        self._receipt_policy = ReceiptPolicy()
        self._credit_policy = CreditPolicy()
        self._completion_policy = CompletionPolicy()
        self._cancellation_policy = CancellationPolicy()
        self._admin_delete_policy = AdminDeletePolicy(allow_completed=allow_admin_delete_completed)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _load(self, request_id: str) -> Versioned[ExchangeRequest]:
        versioned = self._repos.exchanges.get_versioned(request_id)
        if versioned is None:
            raise NotFoundError(f"Exchange request {request_id} not found")
        return versioned

    @staticmethod
    def _check(policy: PolicyEngine, request: ExchangeRequest) -> None:
        decision = policy.evaluate({"request": request})
        if decision.is_denied:
            raise StateError(decision.field_name, decision.current, decision.required, decision.reason)

    def _audit(self, action: str, actor_id: str, request: ExchangeRequest, **extra: Any) -> None:
        details = " ".join(f"{k}={v}" for k, v in extra.items())
        audit_logger.info(
            f"AUDIT: {action} request={request.id} actor={actor_id} status={request.status.value} "
            f"transit={request.transit_status.value if request.transit_status else None} {details}".rstrip()
        )

    def _transition(
        self,
        request_id: str,
        actor_id: str,
        action: str,
        authorize: Callable[[ExchangeRequest], None],
        policy: PolicyEngine,
        mutate: Callable[[ExchangeRequest], None],
        note: str = "",
    ) -> ExchangeRequest:
        """Atomic read-check-modify-write of one exchange request."""
        for attempt in range(1, self._max_attempts + 1):
            versioned = self._load(request_id)
            request = versioned.entity
            authorize(request)
            self._check(policy, request)
            mutate(request)
            record_transition(request, action, actor_id, note)
            try:
                saved = self._repos.exchanges.replace_if_unchanged(request, versioned.etag)
            except PreconditionFailed:
                logger.info(f"Exchange {request_id} changed during '{action}' (attempt {attempt}), re-checking")
                continue
            except DocumentNotFound:
                raise NotFoundError(f"Exchange request {request_id} not found")
            self._audit(action, actor_id, saved)
            return saved
        raise ConcurrencyConflict(request_id)

    def _delete(
        self,
        request_id: str,
        actor_id: str,
        action: str,
        authorize: Callable[[ExchangeRequest], None],
        policy: PolicyEngine,
    ) -> ExchangeRequest:
        for attempt in range(1, self._max_attempts + 1):
            versioned = self._load(request_id)
            request = versioned.entity
            authorize(request)
            self._check(policy, request)
            try:
                deleted = self._repos.exchanges.delete(request_id, etag=versioned.etag)
            except PreconditionFailed:
                logger.info(f"Exchange {request_id} changed during '{action}' (attempt {attempt}), re-checking")
                continue
            if not deleted:
                raise NotFoundError(f"Exchange request {request_id} not found")
            self._audit(action, actor_id, request)
            return request
        raise ConcurrencyConflict(request_id)

    # =========================================================================
    # CUSTOMER OPERATIONS
    # =========================================================================

    def create(self, owner_id: str, details: Dict[str, Any], images: List[Dict[str, Any]]) -> ExchangeRequest:
        """Submit a new exchange request; it starts out pending."""
        self._access.require_user(owner_id)
        request = self._builder.execute(owner_id, details, images)
        saved = self._repos.exchanges.add(request)
        self._audit("created", owner_id, saved, images=len(saved.images))
        return saved

    def submit_shipping(self, owner_id: str, request_id: str, shipping: Dict[str, Any]) -> ExchangeRequest:
        """Record the owner's shipment of an approved item."""

        def mutate(request: ExchangeRequest) -> None:
            request.shipping_details = self._shipping_builder.execute(shipping)
            request.transit_status = TransitStatus.SHIPPED

        return self._transition(
            request_id, owner_id, "shipping_submitted",
            authorize=lambda r: self._access.require_owner(owner_id, r),
            policy=self._shipping_policy,
            mutate=mutate,
            note=str(shipping.get("notes") or "").strip(),
        )

    def cancel(self, owner_id: str, request_id: str) -> ExchangeRequest:
        """Withdraw a pending request. The record is deleted."""
        return self._delete(
            request_id, owner_id, "cancelled",
            authorize=lambda r: self._access.require_owner(owner_id, r),
            policy=self._cancellation_policy,
        )

    def get(self, caller_id: str, request_id: str) -> ExchangeRequest:
        request = self._load(request_id).entity
        self._access.require_owner_or_admin(caller_id, request)
        return request

    def list_for_owner(self, owner_id: str) -> List[ExchangeRequest]:
        return self._repos.exchanges.list_for_owner(owner_id)

    async def customer_credit(self, caller_id: str) -> BalanceResult:
        """Current loyalty-point balance of the caller in the external ledger."""
        profile = self._access.require_user(caller_id)
        try:
            result = await asyncio.wait_for(self._ledger.get_balance(profile.email), timeout=self._ledger_timeout)
        except asyncio.TimeoutError:
            result = BalanceResult(success=False, error=f"Credit ledger timed out after {self._ledger_timeout:g}s")
        except Exception as e:
            logger.error(f"Credit ledger raised while reading balance for {profile.email}: {e}", exc_info=True)
            result = BalanceResult(success=False, error=f"Credit ledger error: {e}")
        if not result.success:
            raise GatewayError(result.error or "Credit ledger unavailable")
        return result

    # =========================================================================
    # ADMINISTRATOR OPERATIONS
    # =========================================================================

    def list_all(self, admin_id: str, status: Optional[str] = None) -> List[ExchangeRequest]:
        self._access.require_admin(admin_id)
        if status and status not in {s.value for s in ExchangeStatus}:
            raise ValidationError(f"Unknown status filter '{status}'")
        return self._repos.exchanges.list_all(status)

    def credit_history(self, admin_id: str) -> List[CreditLedgerEntry]:
        self._access.require_admin(admin_id)
        return self._repos.credit_history.list_all()

    def decide(
        self,
        admin_id: str,
        request_id: str,
        decision: str,
        feedback: str = "",
        warehouse_id: Optional[str] = None,
    ) -> ExchangeRequest:
        """Approve (into a warehouse) or decline a pending request."""
        self._access.require_admin(admin_id)
        errors = DecisionValidator().validate({"decision": decision, "warehouseId": warehouse_id})
        if errors:
            raise ValidationError.from_field_errors(errors)

        def mutate(request: ExchangeRequest) -> None:
            if decision == ExchangeStatus.APPROVED.value:
                # Resolved here so the warehouse is checked at the moment of approval
                warehouse = self._warehouses.resolve_active(warehouse_id)
                request.status = ExchangeStatus.APPROVED
                request.warehouse_id = warehouse.id
                request.warehouse_info = warehouse.snapshot()
                request.transit_status = TransitStatus.NOT_STARTED
            else:
                request.status = ExchangeStatus.DECLINED
            request.admin_feedback = feedback or ""

        return self._transition(
            request_id, admin_id, decision,
            authorize=lambda r: None,
            policy=self._decision_policy,
            mutate=mutate,
            note=feedback or "",
        )

    def mark_received(self, admin_id: str, request_id: str, note: str = "") -> ExchangeRequest:
        """Confirm the shipped item arrived at the warehouse."""
        self._access.require_admin(admin_id)

        def mutate(request: ExchangeRequest) -> None:
            request.transit_status = TransitStatus.RECEIVED
            if note:
                request.admin_feedback = note

        return self._transition(
            request_id, admin_id, "received",
            authorize=lambda r: None,
            policy=self._receipt_policy,
            mutate=mutate,
            note=note,
        )

    async def assign_credit(self, admin_id: str, request_id: str, amount: Any, note: str = "") -> CreditAssignment:
        """
        Assign loyalty points for a received item and post them to the ledger.

        Returns:
            CreditAssignment tagged APPLIED, APPLIED_WITH_GATEWAY_WARNING
            (credit stored locally, ledger post failed) or REJECTED (nothing
            changed; the error says why).
        """
        try:
            self._access.require_admin(admin_id)
            errors = CreditAmountValidator().validate({"amount": amount})
            if errors:
                raise ValidationError.from_field_errors(errors)
            points = int(amount)

            def mutate(request: ExchangeRequest) -> None:
                request.credit_amount = points
                if note:
                    request.admin_feedback = note

            request = self._transition(
                request_id, admin_id, "credit_assigned",
                authorize=lambda r: None,
                policy=self._credit_policy,
                mutate=mutate,
                note=note,
            )
        except ExchangeError as e:
            logger.info(f"Credit assignment for {request_id} rejected: {e.message}")
            return CreditAssignment(outcome=CreditOutcome.REJECTED, error=e)

        owner = self._repos.users.get_by_id(request.owner_id)
        if owner is None:
            post = CreditPostResult(success=False, error=f"Customer profile {request.owner_id} not found")
        else:
            post = await self._post_credit(owner.email, points)

        try:
            entry = self._repos.credit_history.add(CreditLedgerEntry(
                id=new_id("CRD"),
                exchange_request_id=request.id,
                user_id=request.owner_id,
                amount=points,
                currency=self._ledger.currency,
                loyalty_points_success=post.success,
                external_transaction_id=post.external_transaction_id,
                error=post.error,
            ))
        except Exception as e:
            logger.error(
                f"Exchange {request.id}: credit history entry not written "
                f"(ledger post success={post.success}): {e}",
                exc_info=True,
            )
            entry = None

        if post.success and entry is not None:
            self._audit("ledger_posted", admin_id, request, points=points)
            return CreditAssignment(outcome=CreditOutcome.APPLIED, request=request, ledger_entry=entry)

        if entry is None:
            warning = "Credit assigned locally but the credit history entry could not be written"
            if post.success:
                warning += " (loyalty points were posted)"
            else:
                warning += f"; the loyalty ledger update also failed: {post.error}"
        else:
            warning = f"Credit assigned locally but the loyalty ledger update failed: {post.error}"
        logger.warning(f"Exchange {request.id}: {warning}")
        self._audit("ledger_posted" if post.success else "ledger_failed", admin_id, request, points=points)
        return CreditAssignment(
            outcome=CreditOutcome.APPLIED_WITH_GATEWAY_WARNING,
            request=request,
            ledger_entry=entry,
            warning=warning,
        )

    async def _post_credit(self, customer_ref: str, points: int) -> CreditPostResult:
        try:
            return await asyncio.wait_for(self._ledger.post_credit(customer_ref, points), timeout=self._ledger_timeout)
        except asyncio.TimeoutError:
            return CreditPostResult(success=False, error=f"Credit ledger timed out after {self._ledger_timeout:g}s")
        except Exception as e:
            # Treated like a failed post
            logger.error(f"Credit ledger raised while posting for {customer_ref}: {e}", exc_info=True)
            return CreditPostResult(success=False, error=str(e))

    def complete(self, admin_id: str, request_id: str, feedback: str = "") -> ExchangeRequest:
        """Close out a received and credited exchange."""
        self._access.require_admin(admin_id)

        def mutate(request: ExchangeRequest) -> None:
            request.status = ExchangeStatus.COMPLETED
            request.admin_feedback = feedback or "Exchange process completed."

        return self._transition(
            request_id, admin_id, "completed",
            authorize=lambda r: None,
            policy=self._completion_policy,
            mutate=mutate,
            note=feedback or "",
        )

    def admin_delete(self, admin_id: str, request_id: str) -> ExchangeRequest:
        """Remove a request in any state (completed ones only if allowed)."""
        self._access.require_admin(admin_id)
        return self._delete(
            request_id, admin_id, "deleted",
            authorize=lambda r: None,
            policy=self._admin_delete_policy,
        )
