"""
Cosmos DB Client for the Exchange Use Case.

Provides a DocumentStore per Cosmos container. Conditional writes use the
document ETag with an IfNotModified match condition, which makes every
lifecycle transition an atomic compare-and-swap.
Uses DefaultAzureCredential for flexible authentication.
"""

import logging
from typing import Any, Dict, List, Optional

from azure.core import MatchConditions
from azure.cosmos import CosmosClient
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity import DefaultAzureCredential

from core.data import DocumentNotFound, DocumentStore, PreconditionFailed, QueryOptions

# Import shared configuration
from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    get_exchange_container_name,
)

logger = logging.getLogger(__name__)


def _strip_system_fields(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Drop Cosmos system properties (_rid, _etag, _ts, ...) before writing."""
    return {k: v for k, v in doc.items() if not k.startswith("_")}


class CosmosDocumentStore(DocumentStore):
    """A single Cosmos container partitioned on /id."""

    def __init__(self, container):
        self._container = container

    def read(self, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._container.read_item(item=doc_id, partition_key=doc_id)
        except CosmosResourceNotFoundError:
            return None

    def query(self, options: Optional[QueryOptions] = None) -> List[Dict[str, Any]]:
        options = options or QueryOptions()
        clauses = []
        params = []
        for i, (field, value) in enumerate(options.filters.items()):
            clauses.append(f"c.{field} = @p{i}")
            params.append({"name": f"@p{i}", "value": value})

        query = "SELECT * FROM c"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        if options.order_by:
            query += f" ORDER BY c.{options.order_by} {'DESC' if options.order_desc else 'ASC'}"
        if options.limit:
            query += " OFFSET 0 LIMIT @limit"
            params.append({"name": "@limit", "value": options.limit})

        return list(self._container.query_items(query, parameters=params, enable_cross_partition_query=True))

    def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self._container.create_item(_strip_system_fields(doc))
        except CosmosResourceExistsError:
            raise PreconditionFailed(doc["id"])

    def upsert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        return self._container.upsert_item(_strip_system_fields(doc))

    def replace(self, doc: Dict[str, Any], etag: Optional[str] = None) -> Dict[str, Any]:
        kwargs = {}
        if etag is not None:
            kwargs = {"etag": etag, "match_condition": MatchConditions.IfNotModified}
        try:
            return self._container.replace_item(item=doc["id"], body=_strip_system_fields(doc), **kwargs)
        except CosmosAccessConditionFailedError:
            raise PreconditionFailed(doc["id"])
        except CosmosResourceNotFoundError:
            raise DocumentNotFound(doc["id"])

    def delete(self, doc_id: str, etag: Optional[str] = None) -> bool:
        kwargs = {}
        if etag is not None:
            kwargs = {"etag": etag, "match_condition": MatchConditions.IfNotModified}
        try:
            self._container.delete_item(item=doc_id, partition_key=doc_id, **kwargs)
            return True
        except CosmosAccessConditionFailedError:
            raise PreconditionFailed(doc_id)
        except CosmosResourceNotFoundError:
            return False


class ExchangeCosmosClient:
    """Client for accessing exchange data in Cosmos DB."""

    def __init__(self, endpoint: str = COSMOS_ENDPOINT, database_name: str = DATABASE_NAME):
        """Initialize the Cosmos DB client."""
        logger.info("Initializing Exchange Cosmos DB client...")
        self._credential = DefaultAzureCredential(
            exclude_interactive_browser_credential=False,
            exclude_shared_token_cache_credential=False,
        )
        self._client = CosmosClient(endpoint, credential=self._credential)
        self._database = self._client.get_database_client(database_name)
        self._stores: Dict[str, CosmosDocumentStore] = {}
        logger.info(f"Exchange Cosmos DB client initialized: {database_name}")

    def store(self, name: str) -> CosmosDocumentStore:
        """Get a document store for a logical container name, caching for reuse."""
        if name not in self._stores:
            container_name = get_exchange_container_name(name)
            self._stores[name] = CosmosDocumentStore(self._database.get_container_client(container_name))
        return self._stores[name]


# Singleton instance
_client: Optional[ExchangeCosmosClient] = None


def get_exchange_client() -> ExchangeCosmosClient:
    """Get the singleton Cosmos DB client instance."""
    global _client
    if _client is None:
        _client = ExchangeCosmosClient()
    return _client
