"""
Store-Credit Exchange Use Case.

Customers submit product-exchange requests; administrators approve or
decline them, track shipment to a warehouse and credit loyalty points to
the customer's commerce account.

Components:
- ExchangeLifecycleManager: validates and applies every transition
- WarehouseDirectory: warehouse reference data for administrators
- AccessControl: owner / administrator capability checks
- AccountRegistry: signup for existing Shopify customers
- CreditLedgerGateway: loyalty-point balances in Shopify
- Repositories: Cosmos DB (or in-memory) persistence

Usage:
    from use_cases.exchange import build_services

    services = build_services(settings)
    request = services.lifecycle.create(user_id, details, images)
"""

from use_cases.exchange.bootstrap import ExchangeServices, build_data_client, build_services
from use_cases.exchange.lifecycle import CreditAssignment, CreditOutcome, ExchangeLifecycleManager
from use_cases.exchange.access import AccessControl
from use_cases.exchange.accounts import AccountRegistry
from use_cases.exchange.warehouses import WarehouseDirectory
from use_cases.exchange.ledger import (
    BalanceResult,
    CreditLedgerGateway,
    CreditPostResult,
    CustomerLookup,
    ShopifyLedgerGateway,
    UnconfiguredLedgerGateway,
)
from use_cases.exchange.repositories import Repositories

__all__ = [
    # Wiring
    "ExchangeServices",
    "build_services",
    "build_data_client",
    # Lifecycle
    "ExchangeLifecycleManager",
    "CreditAssignment",
    "CreditOutcome",
    "AccessControl",
    "AccountRegistry",
    "WarehouseDirectory",
    # Ledger
    "CreditLedgerGateway",
    "ShopifyLedgerGateway",
    "UnconfiguredLedgerGateway",
    "BalanceResult",
    "CreditPostResult",
    "CustomerLookup",
    # Data
    "Repositories",
]
