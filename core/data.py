"""
Data Layer Base Classes.

The data layer provides the Repository pattern for data access.
This abstracts away the specific data store (Cosmos DB, in-memory, etc.)
and provides a clean interface for the domain layer.

Key principles:
- Document stores handle raw CRUD on JSON documents only
- Repositories map documents to domain objects
- No business logic in either
- Support for different backends via dependency injection
- Optimistic concurrency through ETags: every read returns the document's
  current ETag and conditional writes fail if it has moved on
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

# Type variable for entity types
T = TypeVar("T")

ETAG_FIELD = "_etag"


class PreconditionFailed(Exception):
    """A conditional write found the document changed since it was read."""

    def __init__(self, doc_id: str):
        super().__init__(f"Document {doc_id} was modified since it was read")
        self.doc_id = doc_id


class DocumentNotFound(Exception):
    """A write or delete targeted a document that does not exist."""

    def __init__(self, doc_id: str):
        super().__init__(f"Document {doc_id} does not exist")
        self.doc_id = doc_id


@dataclass
class QueryOptions:
    """Options for document queries."""
    limit: Optional[int] = None
    order_by: Optional[str] = None
    order_desc: bool = False
    filters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Versioned(Generic[T]):
    """An entity together with the ETag it was read at."""
    entity: T
    etag: Optional[str]


class DocumentStore(ABC):
    """
    Abstract base class for a single container of JSON documents.

    Documents are plain dicts keyed by their "id" field. Reads return the
    stored ETag under "_etag".
    """

    @abstractmethod
    def read(self, doc_id: str) -> Optional[Dict[str, Any]]:
        """Read a document by id, or None if it does not exist."""
        pass

    @abstractmethod
    def query(self, options: Optional[QueryOptions] = None) -> List[Dict[str, Any]]:
        """Return documents whose fields equal every filter value."""
        pass

    @abstractmethod
    def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new document."""
        pass

    @abstractmethod
    def upsert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or unconditionally overwrite a document."""
        pass

    @abstractmethod
    def replace(self, doc: Dict[str, Any], etag: Optional[str] = None) -> Dict[str, Any]:
        """
        Overwrite an existing document.

        When etag is given the write only succeeds if the stored document
        still carries that ETag; otherwise PreconditionFailed is raised.
        """
        pass

    @abstractmethod
    def delete(self, doc_id: str, etag: Optional[str] = None) -> bool:
        """
        Delete a document by id.

        Returns:
            True if deleted, False if not found
        """
        pass


class Repository(ABC, Generic[T]):
    """
    Abstract base class for repositories.

    A Repository provides data access methods for a specific entity type
    on top of a DocumentStore.

    Type parameter T represents the entity type this repository manages.
    """

    def __init__(self, store: DocumentStore):
        self._store = store

    @abstractmethod
    def to_entity(self, doc: Dict[str, Any]) -> T:
        """Map a stored document to a domain object."""
        pass

    @abstractmethod
    def to_document(self, entity: T) -> Dict[str, Any]:
        """Map a domain object to a storable document."""
        pass

    def get_by_id(self, id: str) -> Optional[T]:
        """
        Get an entity by its ID.

        Args:
            id: The entity's unique identifier

        Returns:
            The entity if found, None otherwise
        """
        doc = self._store.read(id)
        return self.to_entity(doc) if doc else None

    def get_versioned(self, id: str) -> Optional[Versioned[T]]:
        """Get an entity together with the ETag it was read at."""
        doc = self._store.read(id)
        if not doc:
            return None
        return Versioned(entity=self.to_entity(doc), etag=doc.get(ETAG_FIELD))

    def find(self, options: Optional[QueryOptions] = None) -> List[T]:
        """
        Find entities matching the query options.

        Args:
            options: Query options for filtering and sorting

        Returns:
            The matching entities
        """
        return [self.to_entity(doc) for doc in self._store.query(options)]

    def add(self, entity: T) -> T:
        """Insert a new entity."""
        return self.to_entity(self._store.create(self.to_document(entity)))

    def save(self, entity: T) -> T:
        """
        Save an entity (create or update).

        Args:
            entity: The entity to save

        Returns:
            The saved entity
        """
        return self.to_entity(self._store.upsert(self.to_document(entity)))

    def replace_if_unchanged(self, entity: T, etag: Optional[str]) -> T:
        """Overwrite an entity only if it still carries the given ETag."""
        return self.to_entity(self._store.replace(self.to_document(entity), etag=etag))

    def delete(self, id: str, etag: Optional[str] = None) -> bool:
        """
        Delete an entity by ID.

        Args:
            id: The entity's unique identifier
            etag: Only delete if the document still carries this ETag

        Returns:
            True if deleted, False if not found
        """
        return self._store.delete(id, etag=etag)
