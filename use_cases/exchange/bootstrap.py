"""
Service wiring for the exchange use case.

Builds the document store client, repositories, ledger gateway and the
lifecycle manager from settings. The resulting ExchangeServices object is
stored on the FastAPI app state.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .access import AccessControl
from .accounts import AccountRegistry
from .ledger import CreditLedgerGateway, build_ledger_gateway
from .lifecycle import ExchangeLifecycleManager
from .repositories import Repositories
from .warehouses import WarehouseDirectory

logger = logging.getLogger(__name__)


@dataclass
class ExchangeServices:
    repositories: Repositories
    ledger: CreditLedgerGateway
    access: AccessControl
    warehouses: WarehouseDirectory
    lifecycle: ExchangeLifecycleManager
    accounts: AccountRegistry

    async def close(self) -> None:
        await self.ledger.close()


def build_data_client(backend: str):
    if backend == "memory":
        from .memory_store import MemoryClient

        logger.info("Using in-memory document store (data is lost on restart)")
        return MemoryClient()
    if backend == "cosmos":
        from .cosmos_client import get_exchange_client

        return get_exchange_client()
    raise ValueError(f"Unknown data backend: {backend}")


def build_services(settings, client=None, ledger: Optional[CreditLedgerGateway] = None) -> ExchangeServices:
    """Wire every exchange component from settings; client and ledger may be injected."""
    repositories = Repositories(client or build_data_client(settings.data_backend))
    ledger = ledger or build_ledger_gateway(settings)
    access = AccessControl(repositories.users)
    warehouses = WarehouseDirectory(repositories.warehouses, access)
    lifecycle = ExchangeLifecycleManager(
        repositories,
        ledger,
        access=access,
        warehouses=warehouses,
        ledger_timeout=settings.ledger_timeout_seconds,
        allow_admin_delete_completed=settings.allow_admin_delete_completed,
        max_attempts=settings.transition_max_attempts,
    )
    return ExchangeServices(
        repositories=repositories,
        ledger=ledger,
        access=access,
        warehouses=warehouses,
        lifecycle=lifecycle,
        accounts=AccountRegistry(repositories.users, ledger, ledger_timeout=settings.ledger_timeout_seconds),
    )
