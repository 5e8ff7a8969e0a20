"""Tests for the Shopify credit ledger adapter, using httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from use_cases.exchange.ledger import (
    ShopifyLedgerGateway,
    UnconfiguredLedgerGateway,
    build_ledger_gateway,
)

from tests.conftest import make_settings

API_PREFIX = "/admin/api/2024-01"


class FakeShopify:
    """Minimal Shopify Admin API: one customer, optional loyalty metafield."""

    def __init__(self, points=None, customers=None, fail_with=None):
        self.points = points
        self.customers = customers if customers is not None else [
            {"id": 901, "email": "owner@example.com", "first_name": "Olu", "last_name": "Adeyemi"}
        ]
        self.fail_with = fail_with
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"errors": "boom"})

        path = request.url.path
        if path == f"{API_PREFIX}/customers/search.json":
            return httpx.Response(200, json={"customers": self.customers})
        if path == f"{API_PREFIX}/customers/901/metafields.json" and request.method == "GET":
            metafields = []
            if self.points is not None:
                metafields.append({"id": 55, "namespace": "loyalty", "key": "points", "value": str(self.points)})
            return httpx.Response(200, json={"metafields": metafields})
        if path == f"{API_PREFIX}/customers/901/metafields.json" and request.method == "POST":
            body = json.loads(request.content)["metafield"]
            self.points = int(body["value"])
            return httpx.Response(201, json={"metafield": {"id": 77, **body}})
        if path == f"{API_PREFIX}/metafields/55.json" and request.method == "PUT":
            body = json.loads(request.content)["metafield"]
            self.points = int(body["value"])
            return httpx.Response(200, json={"metafield": body})
        return httpx.Response(404, json={"errors": "Not Found"})

    async def slow_handler(self, request: httpx.Request) -> httpx.Response:
        # Yields on every call so concurrent posts interleave
        await asyncio.sleep(0.01)
        return self.handler(request)


def gateway_for(shop: FakeShopify, slow: bool = False) -> ShopifyLedgerGateway:
    return ShopifyLedgerGateway(
        store_url="https://test-store.myshopify.com/",
        access_token="shpat_test",
        transport=httpx.MockTransport(shop.slow_handler if slow else shop.handler),
    )


async def test_balance_reads_points_metafield():
    gateway = gateway_for(FakeShopify(points=120))
    result = await gateway.get_balance("owner@example.com")
    await gateway.close()

    assert result.success
    assert result.amount == 120
    assert result.currency == "INR"


async def test_balance_defaults_to_zero_without_metafield():
    gateway = gateway_for(FakeShopify(points=None))
    result = await gateway.get_balance("owner@example.com")
    await gateway.close()

    assert result.success
    assert result.amount == 0


async def test_post_credit_adds_to_existing_balance():
    shop = FakeShopify(points=120)
    gateway = gateway_for(shop)
    result = await gateway.post_credit("owner@example.com", 500)
    await gateway.close()

    assert result.success
    assert result.external_transaction_id == "55"
    assert shop.points == 620
    assert shop.requests[-1].method == "PUT"


async def test_post_credit_creates_metafield():
    shop = FakeShopify(points=None)
    gateway = gateway_for(shop)
    result = await gateway.post_credit("owner@example.com", 40)
    await gateway.close()

    assert result.success
    assert result.external_transaction_id == "77"
    assert shop.points == 40
    body = json.loads(shop.requests[-1].content)["metafield"]
    assert body["namespace"] == "loyalty"
    assert body["key"] == "points"


async def test_unknown_customer():
    gateway = gateway_for(FakeShopify(customers=[]))
    result = await gateway.post_credit("nobody@example.com", 10)
    await gateway.close()

    assert not result.success
    assert result.error == "Customer not found in Shopify"


async def test_null_metafield_value_reads_as_zero():
    shop = FakeShopify(points=None)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/customers/901/metafields.json") and request.method == "GET":
            return httpx.Response(200, json={"metafields": [
                {"id": 55, "namespace": "loyalty", "key": "points", "value": None},
            ]})
        return shop.handler(request)

    gateway = ShopifyLedgerGateway(
        store_url="test-store.myshopify.com",
        access_token="shpat_test",
        transport=httpx.MockTransport(handler),
    )
    balance = await gateway.get_balance("owner@example.com")
    posted = await gateway.post_credit("owner@example.com", 25)
    await gateway.close()

    assert balance.success
    assert balance.amount == 0
    assert posted.success
    assert shop.points == 25


async def test_malformed_customer_payload_is_a_failed_result():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"customers": ["not-a-customer"]})

    gateway = ShopifyLedgerGateway(
        store_url="test-store.myshopify.com",
        access_token="shpat_test",
        transport=httpx.MockTransport(handler),
    )
    balance = await gateway.get_balance("owner@example.com")
    await gateway.close()

    assert not balance.success
    assert balance.error.startswith("Error connecting to Shopify")


async def test_concurrent_posts_for_one_customer_are_not_lost():
    shop = FakeShopify(points=100)
    gateway = gateway_for(shop, slow=True)

    first, second = await asyncio.gather(
        gateway.post_credit("owner@example.com", 500),
        gateway.post_credit("Owner@Example.com", 300),
    )
    await gateway.close()

    assert first.success and second.success
    assert shop.points == 900


async def test_find_customer():
    gateway = gateway_for(FakeShopify())
    found = await gateway.find_customer("owner@example.com")
    await gateway.close()

    assert found.success and found.exists
    assert found.customer_id == "901"
    assert (found.first_name, found.last_name) == ("Olu", "Adeyemi")


async def test_find_customer_missing_and_failing():
    gateway = gateway_for(FakeShopify(customers=[]))
    missing = await gateway.find_customer("nobody@example.com")
    await gateway.close()
    assert missing.success
    assert not missing.exists

    gateway = gateway_for(FakeShopify(fail_with=503))
    failed = await gateway.find_customer("owner@example.com")
    await gateway.close()
    assert not failed.success
    assert failed.error.startswith("Error connecting to Shopify")


@pytest.mark.parametrize("status", [401, 500, 503])
async def test_http_errors_become_failed_results(status):
    gateway = gateway_for(FakeShopify(fail_with=status))
    posted = await gateway.post_credit("owner@example.com", 10)
    balance = await gateway.get_balance("owner@example.com")
    await gateway.close()

    assert not posted.success
    assert posted.error.startswith("Error connecting to Shopify")
    assert not balance.success


async def test_unconfigured_gateway_always_fails():
    gateway = build_ledger_gateway(make_settings(ledger_currency="USD"))
    assert isinstance(gateway, UnconfiguredLedgerGateway)
    assert gateway.currency == "USD"

    balance = await gateway.get_balance("owner@example.com")
    posted = await gateway.post_credit("owner@example.com", 10)
    lookup = await gateway.find_customer("owner@example.com")
    assert not balance.success
    assert posted.error == UnconfiguredLedgerGateway.ERROR
    assert not lookup.success


async def test_configured_gateway_is_shopify():
    gateway = build_ledger_gateway(
        make_settings(shopify_store_url="test-store.myshopify.com", shopify_access_token="shpat_test")
    )
    assert isinstance(gateway, ShopifyLedgerGateway)
    await gateway.close()
