"""
Shared fixtures for exchange service tests.

Everything runs against the in-memory document store and a fake credit
ledger, so no Azure or Shopify access is needed.
"""

import asyncio
from typing import Dict, List, Tuple

import pytest
from fastapi.testclient import TestClient

import auth
from config import Settings
from main import create_app
from use_cases.exchange import build_services
from use_cases.exchange.domain.models import UserProfile, Warehouse
from use_cases.exchange.ledger import BalanceResult, CreditLedgerGateway, CreditPostResult, CustomerLookup
from use_cases.exchange.memory_store import MemoryClient

ADMIN_ID = "USR-ADMIN"
OWNER_ID = "USR-OWNER"
OTHER_ID = "USR-OTHER"

OWNER_EMAIL = "owner@example.com"

ACTIVE_WAREHOUSE_ID = "WH-ACTIVE"
INACTIVE_WAREHOUSE_ID = "WH-INACTIVE"

PRODUCT_DETAILS = {
    "productName": "Trail Running Shoes",
    "brand": "Stride",
    "condition": "Like new",
    "description": "Worn twice, original box included",
}

IMAGES = [{"url": "https://images.example.com/shoe-1.jpg", "externalId": "img-1"}]

SHIPPING = {
    "carrierName": "BlueDart",
    "trackingNumber": "BD123456789IN",
    "shippingDate": "2026-10-01",
    "notes": "Dropped at the counter",
}


# ============================================================================
# FAKE LEDGER
# ============================================================================


class FakeLedger(CreditLedgerGateway):
    """In-process ledger; can be switched to fail or to hang. `customers` maps email to Shopify id."""

    def __init__(self, currency: str = "INR"):
        self.currency = currency
        self.fail = False
        self.delay = 0.0
        self.balances: Dict[str, int] = {}
        self.posts: List[Tuple[str, int]] = []
        self.customers: Dict[str, str] = {}
        self.closed = False

    async def get_balance(self, customer_ref: str) -> BalanceResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            return BalanceResult(success=False, currency=self.currency, error="Shopify unavailable")
        return BalanceResult(success=True, amount=self.balances.get(customer_ref, 0), currency=self.currency)

    async def post_credit(self, customer_ref: str, amount: int) -> CreditPostResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            return CreditPostResult(success=False, error="Shopify unavailable")
        self.posts.append((customer_ref, amount))
        self.balances[customer_ref] = self.balances.get(customer_ref, 0) + amount
        return CreditPostResult(success=True, external_transaction_id=f"mf-{len(self.posts)}")

    async def find_customer(self, email: str) -> CustomerLookup:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            return CustomerLookup(success=False, error="Shopify unavailable")
        customer_id = self.customers.get(email.lower())
        if customer_id is None:
            return CustomerLookup(success=True, exists=False)
        return CustomerLookup(success=True, exists=True, customer_id=customer_id, first_name="Shop", last_name="Customer")

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# SERVICES
# ============================================================================


def make_settings(**overrides) -> Settings:
    values = {
        "data_backend": "memory",
        "rate_limit_backend": "memory",
        "rate_limit_general_points": 1000,
        "rate_limit_auth_points": 1000,
        "ledger_timeout_seconds": 1.0,
        "shopify_store_url": "",
        "shopify_access_token": "",
    }
    values.update(overrides)
    return Settings(**values)


def seed(services) -> None:
    users = services.repositories.users
    users.add(UserProfile(
        id=ADMIN_ID, email="admin@example.com", first_name="Ada", is_admin=True,
        password_hash=auth.hash_password("admin-pass"),
    ))
    users.add(UserProfile(
        id=OWNER_ID, email=OWNER_EMAIL, first_name="Olu",
        password_hash=auth.hash_password("owner-pass"),
    ))
    users.add(UserProfile(id=OTHER_ID, email="other@example.com", first_name="Otto"))

    warehouses = services.repositories.warehouses
    warehouses.add(Warehouse(
        id=ACTIVE_WAREHOUSE_ID, name="Bengaluru Hub", address_line1="42 Outer Ring Road",
        city="Bengaluru", state="Karnataka", postal_code="560103", country="India",
    ))
    warehouses.add(Warehouse(
        id=INACTIVE_WAREHOUSE_ID, name="Old Depot", address_line1="1 Closed Lane",
        city="Delhi", state="Delhi", postal_code="110020", country="India", is_active=False,
    ))


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def make_services(ledger):
    """Factory: build seeded services, optionally with setting overrides or a custom client."""

    def _make(client=None, **overrides):
        services = build_services(make_settings(**overrides), client=client or MemoryClient(), ledger=ledger)
        seed(services)
        return services

    return _make


@pytest.fixture
def services(make_services):
    return make_services()


@pytest.fixture
def lifecycle(services):
    return services.lifecycle


@pytest.fixture
def pending(lifecycle):
    return lifecycle.create(OWNER_ID, dict(PRODUCT_DETAILS), list(IMAGES))


@pytest.fixture
def approved(lifecycle, pending):
    return lifecycle.decide(ADMIN_ID, pending.id, "approved", "Looks good", ACTIVE_WAREHOUSE_ID)


@pytest.fixture
def shipped(lifecycle, approved):
    return lifecycle.submit_shipping(OWNER_ID, approved.id, dict(SHIPPING))


@pytest.fixture
def received(lifecycle, shipped):
    return lifecycle.mark_received(ADMIN_ID, shipped.id, "Arrived in good shape")


# ============================================================================
# HTTP
# ============================================================================


@pytest.fixture(autouse=True)
def clear_sessions():
    yield
    auth._sessions.clear()


@pytest.fixture
def make_client(make_services):
    """Factory: TestClient over a freshly seeded app."""
    clients = []

    def _make(**overrides):
        settings = make_settings(**overrides)
        services = make_services(**overrides)
        client = TestClient(create_app(settings, services))
        client.__enter__()
        clients.append(client)
        return client, services

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def api(make_client):
    client, _ = make_client()
    return client


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {auth.create_session(ADMIN_ID)}"}


@pytest.fixture
def owner_headers():
    return {"Authorization": f"Bearer {auth.create_session(OWNER_ID)}"}


@pytest.fixture
def other_headers():
    return {"Authorization": f"Bearer {auth.create_session(OTHER_ID)}"}
