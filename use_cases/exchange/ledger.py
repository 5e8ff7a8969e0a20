"""
Credit Ledger Gateway.

The external system holding a customer's redeemable loyalty-point balance.
Remote failures never raise: every call returns a typed result so the
caller can decide whether to proceed with local-only state changes.
Nothing here retries.

ShopifyLedgerGateway keeps the balance in a customer metafield
(namespace "loyalty", key "points") and looks customers up by email.
"""

import asyncio
import logging
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass
class BalanceResult:
    success: bool
    amount: int = 0
    currency: str = ""
    error: Optional[str] = None


@dataclass
class CreditPostResult:
    success: bool
    external_transaction_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CustomerLookup:
    success: bool
    exists: bool = False
    customer_id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    error: Optional[str] = None


class CreditLedgerGateway(ABC):
    """Reads and posts loyalty-point balances for a customer reference (email)."""

    currency: str = "INR"

    @abstractmethod
    async def get_balance(self, customer_ref: str) -> BalanceResult:
        pass

    @abstractmethod
    async def post_credit(self, customer_ref: str, amount: int) -> CreditPostResult:
        pass

    @abstractmethod
    async def find_customer(self, email: str) -> CustomerLookup:
        pass

    async def close(self) -> None:
        pass


class UnconfiguredLedgerGateway(CreditLedgerGateway):
    """Used when no ledger credentials are configured; every call fails."""

    ERROR = "Credit ledger is not configured"

    def __init__(self, currency: str = "INR"):
        self.currency = currency

    async def get_balance(self, customer_ref: str) -> BalanceResult:
        return BalanceResult(success=False, currency=self.currency, error=self.ERROR)

    async def post_credit(self, customer_ref: str, amount: int) -> CreditPostResult:
        logger.warning(f"Credit of {amount} points for {customer_ref} not posted: {self.ERROR}")
        return CreditPostResult(success=False, error=self.ERROR)

    async def find_customer(self, email: str) -> CustomerLookup:
        return CustomerLookup(success=False, error=self.ERROR)


class ShopifyLedgerGateway(CreditLedgerGateway):
    """Loyalty points stored on Shopify customers via the Admin REST API."""

    METAFIELD_NAMESPACE = "loyalty"
    METAFIELD_KEY = "points"

    def __init__(
        self,
        store_url: str,
        access_token: str,
        api_version: str = "2024-01",
        currency: str = "INR",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.currency = currency
        store = store_url.replace("https://", "").replace("http://", "").rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"https://{store}/admin/api/{api_version}",
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        logger.info(f"Shopify ledger gateway initialized: {store}")

    async def close(self) -> None:
        await self._client.aclose()

    def _customer_lock(self, customer_ref: str) -> asyncio.Lock:
        key = customer_ref.strip().lower()
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def _find_customer(self, email: str) -> Optional[Dict[str, Any]]:
        response = await self._client.get(
            "/customers/search.json",
            params={"query": f"email:{email}", "fields": "id,email,first_name,last_name"},
        )
        response.raise_for_status()
        customers = response.json().get("customers", [])
        return customers[0] if customers else None

    async def _points_metafield(self, customer_id: Any) -> Optional[Dict[str, Any]]:
        response = await self._client.get(
            f"/customers/{customer_id}/metafields.json",
            params={"namespace": self.METAFIELD_NAMESPACE, "key": self.METAFIELD_KEY},
        )
        response.raise_for_status()
        for metafield in response.json().get("metafields", []):
            if metafield.get("namespace") == self.METAFIELD_NAMESPACE and metafield.get("key") == self.METAFIELD_KEY:
                return metafield
        return None

    @staticmethod
    def _points(metafield: Optional[Dict[str, Any]]) -> int:
        if not metafield or metafield.get("value") in (None, ""):
            return 0
        return int(metafield["value"])

    async def find_customer(self, email: str) -> CustomerLookup:
        try:
            customer = await self._find_customer(email)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error looking up Shopify customer {email}: {e}")
            return CustomerLookup(success=False, error=f"Error connecting to Shopify: {e}")
        if customer is None:
            return CustomerLookup(success=True, exists=False)
        return CustomerLookup(
            success=True,
            exists=True,
            customer_id=str(customer.get("id", "")),
            first_name=customer.get("first_name") or "",
            last_name=customer.get("last_name") or "",
        )

    async def get_balance(self, customer_ref: str) -> BalanceResult:
        try:
            customer = await self._find_customer(customer_ref)
            if customer is None:
                return BalanceResult(success=False, currency=self.currency, error="Customer not found in Shopify")
            metafield = await self._points_metafield(customer["id"])
            return BalanceResult(success=True, amount=self._points(metafield), currency=self.currency)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error reading loyalty balance for {customer_ref}: {e}")
            return BalanceResult(success=False, currency=self.currency, error=f"Error connecting to Shopify: {e}")

    async def post_credit(self, customer_ref: str, amount: int) -> CreditPostResult:
        """
        Add points to the customer's balance.

        The metafield update is a read-modify-write, so posts for the same
        customer are serialized. This covers one process only; Shopify has no
        conditional metafield write to guard across instances.
        """
        async with self._customer_lock(customer_ref):
            try:
                return await self._add_points(customer_ref, amount)
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                logger.error(f"Error posting {amount} loyalty points for {customer_ref}: {e}")
                return CreditPostResult(success=False, error=f"Error connecting to Shopify: {e}")

    async def _add_points(self, customer_ref: str, amount: int) -> CreditPostResult:
        customer = await self._find_customer(customer_ref)
        if customer is None:
            return CreditPostResult(success=False, error="Customer not found in Shopify")

        metafield = await self._points_metafield(customer["id"])
        balance = self._points(metafield) + amount
        body = {"value": str(balance), "type": "number_integer"}

        if metafield:
            response = await self._client.put(
                f"/metafields/{metafield['id']}.json",
                json={"metafield": {"id": metafield["id"], **body}},
            )
        else:
            response = await self._client.post(
                f"/customers/{customer['id']}/metafields.json",
                json={"metafield": {
                    "namespace": self.METAFIELD_NAMESPACE,
                    "key": self.METAFIELD_KEY,
                    **body,
                }},
            )
        response.raise_for_status()
        saved = response.json().get("metafield", {})
        logger.info(f"Posted {amount} loyalty points to Shopify customer {customer['id']} (balance {balance})")
        return CreditPostResult(success=True, external_transaction_id=str(saved.get("id", "")) or None)


def build_ledger_gateway(settings) -> CreditLedgerGateway:
    """Create the configured ledger gateway."""
    if settings.shopify_store_url and settings.shopify_access_token:
        return ShopifyLedgerGateway(
            store_url=settings.shopify_store_url,
            access_token=settings.shopify_access_token,
            api_version=settings.shopify_api_version,
            currency=settings.ledger_currency,
            timeout=settings.ledger_timeout_seconds,
        )
    logger.warning("SHOPIFY_STORE_URL / SHOPIFY_ACCESS_TOKEN not set; loyalty points will not be posted")
    return UnconfiguredLedgerGateway(currency=settings.ledger_currency)
