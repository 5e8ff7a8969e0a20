"""Tests for self-service signup of existing Shopify customers."""

import pytest

import auth
from core.errors import DuplicateAccountError, GatewayError, NotFoundError, ValidationError

from tests.conftest import OWNER_EMAIL

NEW_EMAIL = "new.customer@example.com"


@pytest.fixture
def accounts(services):
    return services.accounts


async def test_register_existing_customer(accounts, services, ledger):
    ledger.customers[NEW_EMAIL] = "7001"

    profile = await accounts.register(" New.Customer@Example.com ", "s3cret!", "Nia")

    assert profile.email == NEW_EMAIL
    assert profile.first_name == "Nia"
    assert profile.last_name == "Customer"
    assert profile.is_admin is False
    assert auth.verify_password("s3cret!", profile.password_hash)
    assert services.repositories.users.get_by_email(NEW_EMAIL).id == profile.id


async def test_register_unknown_customer_is_refused(accounts, services):
    with pytest.raises(NotFoundError):
        await accounts.register(NEW_EMAIL, "s3cret!")
    assert services.repositories.users.get_by_email(NEW_EMAIL) is None


async def test_register_twice_is_a_conflict(accounts, ledger):
    ledger.customers[OWNER_EMAIL] = "7002"
    with pytest.raises(DuplicateAccountError) as exc_info:
        await accounts.register(OWNER_EMAIL.upper(), "another-pass")
    assert exc_info.value.status_code == 409


@pytest.mark.parametrize("email, password", [
    ("not-an-email", "s3cret!"),
    (NEW_EMAIL, "short"),
    (None, None),
])
async def test_register_validation(accounts, ledger, email, password):
    ledger.customers[NEW_EMAIL] = "7001"
    with pytest.raises(ValidationError):
        await accounts.register(email, password)


async def test_register_when_shopify_is_down(accounts, ledger):
    ledger.customers[NEW_EMAIL] = "7001"
    ledger.fail = True
    with pytest.raises(GatewayError):
        await accounts.register(NEW_EMAIL, "s3cret!")


async def test_check_customer(accounts, ledger):
    ledger.customers[NEW_EMAIL] = "7001"
    assert (await accounts.check_customer(NEW_EMAIL)).exists
    assert not (await accounts.check_customer("stranger@example.com")).exists
    with pytest.raises(ValidationError):
        await accounts.check_customer("")


async def test_check_customer_timeout(make_services, ledger):
    services = make_services(ledger_timeout_seconds=0.05)
    ledger.delay = 1.0
    with pytest.raises(GatewayError, match="timed out"):
        await services.accounts.check_customer(NEW_EMAIL)
