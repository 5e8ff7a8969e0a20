"""
Exchange Repositories.

Map stored documents to domain models. The backing DocumentStore is either
Cosmos DB or the in-memory store; repositories do not know which.
"""

from typing import Any, Dict, List, Optional

from core.data import QueryOptions, Repository

from .domain.models import CreditLedgerEntry, ExchangeRequest, UserProfile, Warehouse


class ExchangeRequestRepository(Repository[ExchangeRequest]):

    def to_entity(self, doc: Dict[str, Any]) -> ExchangeRequest:
        return ExchangeRequest.from_dict(doc)

    def to_document(self, entity: ExchangeRequest) -> Dict[str, Any]:
        return entity.to_dict()

    def list_for_owner(self, owner_id: str) -> List[ExchangeRequest]:
        """All requests of one customer, newest first."""
        return self.find(QueryOptions(filters={"ownerId": owner_id}, order_by="createdAt", order_desc=True))

    def list_all(self, status: Optional[str] = None) -> List[ExchangeRequest]:
        filters = {"status": status} if status else {}
        return self.find(QueryOptions(filters=filters, order_by="createdAt", order_desc=True))


class WarehouseRepository(Repository[Warehouse]):

    def to_entity(self, doc: Dict[str, Any]) -> Warehouse:
        return Warehouse.from_dict(doc)

    def to_document(self, entity: Warehouse) -> Dict[str, Any]:
        return entity.to_dict()

    def list_all(self, active_only: bool = False) -> List[Warehouse]:
        warehouses = self.find(QueryOptions(order_by="name"))
        if active_only:
            warehouses = [w for w in warehouses if w.is_active]
        return warehouses


class CreditLedgerRepository(Repository[CreditLedgerEntry]):

    def to_entity(self, doc: Dict[str, Any]) -> CreditLedgerEntry:
        return CreditLedgerEntry.from_dict(doc)

    def to_document(self, entity: CreditLedgerEntry) -> Dict[str, Any]:
        return entity.to_dict()

    def list_all(self, exchange_request_id: Optional[str] = None) -> List[CreditLedgerEntry]:
        filters = {"exchangeRequestId": exchange_request_id} if exchange_request_id else {}
        return self.find(QueryOptions(filters=filters, order_by="createdAt", order_desc=True))


class UserRepository(Repository[UserProfile]):

    def to_entity(self, doc: Dict[str, Any]) -> UserProfile:
        return UserProfile.from_dict(doc)

    def to_document(self, entity: UserProfile) -> Dict[str, Any]:
        return entity.to_dict()

    def get_by_email(self, email: str) -> Optional[UserProfile]:
        """Look up a user by email address (case-insensitive)."""
        users = self.find(QueryOptions(filters={"email": email.strip().lower()}, limit=1))
        return users[0] if users else None


class Repositories:
    """The set of repositories the service needs, built on one client."""

    def __init__(self, client):
        self.exchanges = ExchangeRequestRepository(client.store("exchange_requests"))
        self.warehouses = WarehouseRepository(client.store("warehouses"))
        self.credit_history = CreditLedgerRepository(client.store("credit_history"))
        self.users = UserRepository(client.store("users"))
