"""
Tests for the exchange lifecycle manager.

Covers the full pending -> completed flow, out-of-order rejections,
authorization, the credit assignment outcomes and optimistic concurrency.
"""

import pytest

from core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConcurrencyConflict,
    GatewayError,
    NotFoundError,
    StateError,
    ValidationError,
)
from use_cases.exchange import CreditOutcome
from use_cases.exchange.domain.models import ExchangeStatus, TransitStatus
from use_cases.exchange.memory_store import MemoryClient, MemoryDocumentStore

from tests.conftest import (
    ACTIVE_WAREHOUSE_ID,
    ADMIN_ID,
    IMAGES,
    INACTIVE_WAREHOUSE_ID,
    OTHER_ID,
    OWNER_EMAIL,
    OWNER_ID,
    PRODUCT_DETAILS,
    SHIPPING,
)


# ============================================================================
# HAPPY PATH
# ============================================================================


async def test_full_exchange_scenario(lifecycle, services, ledger):
    request = lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), list(IMAGES))
    assert request.status == ExchangeStatus.PENDING
    assert request.id.startswith("EXC-")

    # Completing straight away is out of order
    with pytest.raises(StateError) as exc_info:
        lifecycle.complete(ADMIN_ID, request.id)
    assert exc_info.value.field == "status"

    approved = lifecycle.decide(ADMIN_ID, request.id, "approved", "Looks good", ACTIVE_WAREHOUSE_ID)
    assert approved.status == ExchangeStatus.APPROVED
    assert approved.transit_status == TransitStatus.NOT_STARTED
    assert approved.warehouse_id == ACTIVE_WAREHOUSE_ID
    assert approved.warehouse_info["city"] == "Bengaluru"
    assert approved.admin_feedback == "Looks good"

    shipped = lifecycle.submit_shipping(OWNER_ID, request.id, dict(SHIPPING))
    assert shipped.transit_status == TransitStatus.SHIPPED
    assert shipped.shipping_details.tracking_number == "BD123456789IN"

    received = lifecycle.mark_received(ADMIN_ID, request.id)
    assert received.transit_status == TransitStatus.RECEIVED

    result = await lifecycle.assign_credit(ADMIN_ID, request.id, 500, "Great condition")
    assert result.outcome == CreditOutcome.APPLIED
    assert result.request.credit_amount == 500
    assert ledger.posts == [(OWNER_EMAIL, 500)]

    completed = lifecycle.complete(ADMIN_ID, request.id)
    assert completed.status == ExchangeStatus.COMPLETED
    assert completed.admin_feedback == "Exchange process completed."

    actions = [entry.action for entry in completed.status_history]
    assert actions == ["created", "approved", "shipping_submitted", "received", "credit_assigned", "completed"]
    assert completed.updated_at >= completed.created_at

    history = lifecycle.credit_history(ADMIN_ID)
    assert len(history) == 1
    assert history[0].loyalty_points_success is True
    assert history[0].external_transaction_id == "mf-1"


def test_decline_is_terminal(lifecycle, pending):
    declined = lifecycle.decide(ADMIN_ID, pending.id, "declined", "Not eligible")
    assert declined.status == ExchangeStatus.DECLINED
    assert declined.transit_status is None

    with pytest.raises(StateError):
        lifecycle.decide(ADMIN_ID, pending.id, "approved", "", ACTIVE_WAREHOUSE_ID)
    with pytest.raises(StateError):
        lifecycle.complete(ADMIN_ID, pending.id)
    with pytest.raises(StateError):
        lifecycle.submit_shipping(OWNER_ID, pending.id, dict(SHIPPING))


# ============================================================================
# CREATION
# ============================================================================


def test_create_rejects_missing_images(lifecycle):
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), [])
    assert exc_info.value.message == "Please upload at least one image of the product"


def test_create_requires_known_user(lifecycle):
    with pytest.raises(AuthenticationError):
        lifecycle.create("USR-GHOST", dict(PRODUCT_DETAILS), list(IMAGES))


def test_list_for_owner_newest_first(lifecycle):
    first = lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), list(IMAGES))
    second = lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), list(IMAGES))
    lifecycle.create(OTHER_ID, dict(PRODUCT_DETAILS), list(IMAGES))

    requests = lifecycle.list_for_owner(OWNER_ID)
    assert {r.id for r in requests} == {first.id, second.id}
    assert requests[0].created_at >= requests[1].created_at


# ============================================================================
# APPROVAL
# ============================================================================


@pytest.mark.parametrize("warehouse_id", [None, "", INACTIVE_WAREHOUSE_ID, "WH-MISSING"])
def test_approval_requires_active_warehouse(lifecycle, pending, warehouse_id):
    with pytest.raises(ValidationError):
        lifecycle.decide(ADMIN_ID, pending.id, "approved", "", warehouse_id)
    assert lifecycle.get(ADMIN_ID, pending.id).status == ExchangeStatus.PENDING


def test_approval_snapshot_survives_warehouse_changes(lifecycle, services, approved):
    services.warehouses.update(ADMIN_ID, ACTIVE_WAREHOUSE_ID, {"city": "Mysuru"})
    assert lifecycle.get(OWNER_ID, approved.id).warehouse_info["city"] == "Bengaluru"


def test_decide_requires_admin(lifecycle, pending):
    with pytest.raises(AuthorizationError):
        lifecycle.decide(OWNER_ID, pending.id, "approved", "", ACTIVE_WAREHOUSE_ID)


def test_admin_status_is_read_fresh(lifecycle, services, pending):
    admin = services.repositories.users.get_by_id(ADMIN_ID)
    admin.is_admin = False
    services.repositories.users.save(admin)

    with pytest.raises(AuthorizationError):
        lifecycle.decide(ADMIN_ID, pending.id, "declined")


def test_unknown_request_is_not_found(lifecycle):
    with pytest.raises(NotFoundError):
        lifecycle.decide(ADMIN_ID, "EXC-MISSING", "declined")


# ============================================================================
# SHIPPING AND RECEIPT
# ============================================================================


def test_non_owner_cannot_submit_shipping(lifecycle, approved):
    with pytest.raises(AuthorizationError):
        lifecycle.submit_shipping(OTHER_ID, approved.id, dict(SHIPPING))
    assert lifecycle.get(OWNER_ID, approved.id).shipping_details is None


def test_shipping_submitted_once(lifecycle, shipped):
    with pytest.raises(StateError) as exc_info:
        lifecycle.submit_shipping(OWNER_ID, shipped.id, dict(SHIPPING))
    assert exc_info.value.field == "shippingDetails"


def test_shipping_requires_approval(lifecycle, pending):
    with pytest.raises(StateError) as exc_info:
        lifecycle.submit_shipping(OWNER_ID, pending.id, dict(SHIPPING))
    assert exc_info.value.current == "pending"
    assert exc_info.value.required == "approved"


def test_shipping_validates_fields(lifecycle, approved):
    with pytest.raises(ValidationError):
        lifecycle.submit_shipping(OWNER_ID, approved.id, {"carrierName": "DHL", "shippingDate": "soon"})


def test_receive_before_shipping_is_rejected(lifecycle, approved):
    with pytest.raises(StateError) as exc_info:
        lifecycle.mark_received(ADMIN_ID, approved.id)
    assert exc_info.value.field == "shippingDetails"


def test_receive_twice_is_rejected(lifecycle, received):
    with pytest.raises(StateError):
        lifecycle.mark_received(ADMIN_ID, received.id)


# ============================================================================
# CREDIT
# ============================================================================


async def test_credit_before_receipt_is_rejected(lifecycle, shipped, ledger):
    result = await lifecycle.assign_credit(ADMIN_ID, shipped.id, 100)
    assert result.outcome == CreditOutcome.REJECTED
    assert isinstance(result.error, StateError)
    assert result.error.field == "transitStatus"
    assert ledger.posts == []


async def test_credit_assigned_at_most_once(lifecycle, received, ledger):
    first = await lifecycle.assign_credit(ADMIN_ID, received.id, 300)
    second = await lifecycle.assign_credit(ADMIN_ID, received.id, 900)

    assert first.applied
    assert second.outcome == CreditOutcome.REJECTED
    assert second.error.field == "creditAmount"
    assert lifecycle.get(ADMIN_ID, received.id).credit_amount == 300
    assert ledger.posts == [(OWNER_EMAIL, 300)]

    with pytest.raises(StateError):
        second.raise_if_rejected()


@pytest.mark.parametrize("amount", [-10, 12.5, "lots", None])
async def test_invalid_credit_amount(lifecycle, received, amount):
    result = await lifecycle.assign_credit(ADMIN_ID, received.id, amount)
    assert result.outcome == CreditOutcome.REJECTED
    assert isinstance(result.error, ValidationError)
    assert lifecycle.get(ADMIN_ID, received.id).credit_amount is None


async def test_credit_requires_admin(lifecycle, received):
    result = await lifecycle.assign_credit(OWNER_ID, received.id, 100)
    assert isinstance(result.error, AuthorizationError)


async def test_zero_credit_blocks_completion(lifecycle, received):
    result = await lifecycle.assign_credit(ADMIN_ID, received.id, 0)
    assert result.applied

    with pytest.raises(StateError) as exc_info:
        lifecycle.complete(ADMIN_ID, received.id)
    assert exc_info.value.field == "creditAmount"


def test_complete_requires_credit(lifecycle, received):
    with pytest.raises(StateError) as exc_info:
        lifecycle.complete(ADMIN_ID, received.id)
    assert exc_info.value.field == "creditAmount"


async def test_gateway_failure_keeps_local_credit(lifecycle, received, ledger):
    ledger.fail = True

    result = await lifecycle.assign_credit(ADMIN_ID, received.id, 250)

    assert result.outcome == CreditOutcome.APPLIED_WITH_GATEWAY_WARNING
    assert "Shopify unavailable" in result.warning
    assert lifecycle.get(ADMIN_ID, received.id).credit_amount == 250
    assert result.ledger_entry.loyalty_points_success is False
    assert result.ledger_entry.error == "Shopify unavailable"

    # The exchange can still be completed
    assert lifecycle.complete(ADMIN_ID, received.id).status == ExchangeStatus.COMPLETED


async def test_gateway_timeout_is_a_warning(make_services, ledger):
    services = make_services(ledger_timeout_seconds=0.05)
    lifecycle = services.lifecycle
    request = lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), list(IMAGES))
    lifecycle.decide(ADMIN_ID, request.id, "approved", "", ACTIVE_WAREHOUSE_ID)
    lifecycle.submit_shipping(OWNER_ID, request.id, dict(SHIPPING))
    lifecycle.mark_received(ADMIN_ID, request.id)

    ledger.delay = 1.0
    result = await lifecycle.assign_credit(ADMIN_ID, request.id, 100)

    assert result.outcome == CreditOutcome.APPLIED_WITH_GATEWAY_WARNING
    assert "timed out" in result.warning
    entries = services.repositories.credit_history.list_all(request.id)
    assert len(entries) == 1
    assert entries[0].loyalty_points_success is False


async def test_customer_credit(lifecycle, ledger):
    ledger.balances[OWNER_EMAIL] = 1200
    balance = await lifecycle.customer_credit(OWNER_ID)
    assert balance.amount == 1200
    assert balance.currency == "INR"


async def test_customer_credit_gateway_failure(lifecycle, ledger):
    ledger.fail = True
    with pytest.raises(GatewayError):
        await lifecycle.customer_credit(OWNER_ID)


async def test_customer_credit_ledger_exception_is_gateway_error(lifecycle, ledger):
    async def malformed(customer_ref):
        raise TypeError("int() argument must be a string, not 'NoneType'")

    ledger.get_balance = malformed
    with pytest.raises(GatewayError) as exc_info:
        await lifecycle.customer_credit(OWNER_ID)
    assert exc_info.value.status_code == 502


async def test_credit_history_write_failure_is_a_warning(lifecycle, services, received, ledger, monkeypatch):
    def throttled(entry):
        raise RuntimeError("Request rate is large")

    monkeypatch.setattr(services.repositories.credit_history, "add", throttled)

    result = await lifecycle.assign_credit(ADMIN_ID, received.id, 300)

    assert result.outcome == CreditOutcome.APPLIED_WITH_GATEWAY_WARNING
    assert result.ledger_entry is None
    assert "credit history entry could not be written" in result.warning
    assert "loyalty points were posted" in result.warning
    assert ledger.posts == [(OWNER_EMAIL, 300)]
    assert lifecycle.get(ADMIN_ID, received.id).credit_amount == 300


# ============================================================================
# CANCELLATION AND DELETION
# ============================================================================


def test_owner_cancels_pending(lifecycle, pending):
    lifecycle.cancel(OWNER_ID, pending.id)
    with pytest.raises(NotFoundError):
        lifecycle.get(OWNER_ID, pending.id)


def test_cancel_rules(lifecycle, pending):
    with pytest.raises(AuthorizationError):
        lifecycle.cancel(OTHER_ID, pending.id)
    lifecycle.decide(ADMIN_ID, pending.id, "declined")
    with pytest.raises(StateError):
        lifecycle.cancel(OWNER_ID, pending.id)


async def _complete(lifecycle, request_id):
    lifecycle.decide(ADMIN_ID, request_id, "approved", "", ACTIVE_WAREHOUSE_ID)
    lifecycle.submit_shipping(OWNER_ID, request_id, dict(SHIPPING))
    lifecycle.mark_received(ADMIN_ID, request_id)
    await lifecycle.assign_credit(ADMIN_ID, request_id, 100)
    return lifecycle.complete(ADMIN_ID, request_id)


async def test_admin_delete_completed_when_disallowed(make_services):
    lifecycle = make_services(allow_admin_delete_completed=False).lifecycle
    request = lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), list(IMAGES))
    await _complete(lifecycle, request.id)

    with pytest.raises(StateError):
        lifecycle.admin_delete(ADMIN_ID, request.id)
    assert lifecycle.get(ADMIN_ID, request.id).status == ExchangeStatus.COMPLETED


def test_admin_delete_any_state_by_default(lifecycle, approved):
    deleted = lifecycle.admin_delete(ADMIN_ID, approved.id)
    assert deleted.id == approved.id
    with pytest.raises(NotFoundError):
        lifecycle.admin_delete(ADMIN_ID, approved.id)


def test_get_visibility(lifecycle, pending):
    assert lifecycle.get(OWNER_ID, pending.id).id == pending.id
    assert lifecycle.get(ADMIN_ID, pending.id).id == pending.id
    with pytest.raises(AuthorizationError):
        lifecycle.get(OTHER_ID, pending.id)


def test_list_all_filters_by_status(lifecycle, pending, approved):
    other = lifecycle.create(OTHER_ID, dict(PRODUCT_DETAILS), list(IMAGES))
    assert [r.id for r in lifecycle.list_all(ADMIN_ID, "pending")] == [other.id]
    assert [r.id for r in lifecycle.list_all(ADMIN_ID, "approved")] == [approved.id]
    assert len(lifecycle.list_all(ADMIN_ID)) == 2
    with pytest.raises(ValidationError):
        lifecycle.list_all(ADMIN_ID, "shipped")
    with pytest.raises(AuthorizationError):
        lifecycle.list_all(OWNER_ID)


# ============================================================================
# CONCURRENCY
# ============================================================================


class InterleavingStore(MemoryDocumentStore):
    """Runs `interleave` just before a conditional replace, simulating a concurrent writer."""

    def __init__(self):
        super().__init__()
        self.interleave = None
        self.replace_calls = 0

    def replace(self, doc, etag=None):
        self.replace_calls += 1
        if self.interleave is not None:
            self.interleave(self)
        return super().replace(doc, etag=etag)


class InterleavingClient(MemoryClient):

    def __init__(self, store):
        super().__init__()
        self._stores["exchange_requests"] = store


async def test_concurrent_credit_only_one_wins(make_services, ledger):
    store = InterleavingStore()
    lifecycle = make_services(client=InterleavingClient(store)).lifecycle
    request = lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), list(IMAGES))
    lifecycle.decide(ADMIN_ID, request.id, "approved", "", ACTIVE_WAREHOUSE_ID)
    lifecycle.submit_shipping(OWNER_ID, request.id, dict(SHIPPING))
    lifecycle.mark_received(ADMIN_ID, request.id)

    def other_admin_assigns_first(s):
        s.interleave = None
        doc = s.read(request.id)
        doc["creditAmount"] = 700
        s.upsert(doc)

    store.interleave = other_admin_assigns_first
    result = await lifecycle.assign_credit(ADMIN_ID, request.id, 300)

    # The losing write re-checks against the fresh record and is rejected
    assert result.outcome == CreditOutcome.REJECTED
    assert result.error.field == "creditAmount"
    assert lifecycle.get(ADMIN_ID, request.id).credit_amount == 700
    assert ledger.posts == []


def test_retries_exhausted_raise_conflict(make_services):
    store = InterleavingStore()
    lifecycle = make_services(client=InterleavingClient(store), transition_max_attempts=2).lifecycle
    request = lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), list(IMAGES))

    def touch(s):
        s.upsert(s.read(request.id))

    store.interleave = touch
    with pytest.raises(ConcurrencyConflict):
        lifecycle.decide(ADMIN_ID, request.id, "declined")
    assert store.replace_calls == 2
    assert lifecycle.get(ADMIN_ID, request.id).status == ExchangeStatus.PENDING


def test_lost_race_retries_and_succeeds(make_services):
    store = InterleavingStore()
    lifecycle = make_services(client=InterleavingClient(store)).lifecycle
    request = lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), list(IMAGES))

    def touch_once(s):
        s.interleave = None
        s.upsert(s.read(request.id))

    store.interleave = touch_once
    declined = lifecycle.decide(ADMIN_ID, request.id, "declined", "No")
    assert declined.status == ExchangeStatus.DECLINED
    assert store.replace_calls == 2
