"""
In-Memory Document Store.

Process-local stand-in for Cosmos DB used for local development
(DATA_BACKEND=memory) and tests. It keeps Cosmos semantics where the
lifecycle depends on them: every write issues a fresh ETag and conditional
writes fail with PreconditionFailed once the stored ETag has moved on.
"""

import copy
import threading
import uuid
from typing import Any, Dict, List, Optional

from core.data import ETAG_FIELD, DocumentNotFound, DocumentStore, PreconditionFailed, QueryOptions


class MemoryDocumentStore(DocumentStore):
    """Thread-safe dict of documents keyed by id."""

    def __init__(self):
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _write(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy({k: v for k, v in doc.items() if k != ETAG_FIELD})
        stored[ETAG_FIELD] = f'"{uuid.uuid4().hex}"'
        self._docs[stored["id"]] = stored
        return copy.deepcopy(stored)

    def read(self, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._docs.get(doc_id)
            return copy.deepcopy(doc) if doc else None

    def query(self, options: Optional[QueryOptions] = None) -> List[Dict[str, Any]]:
        options = options or QueryOptions()
        with self._lock:
            docs = [
                copy.deepcopy(doc) for doc in self._docs.values()
                if all(doc.get(k) == v for k, v in options.filters.items())
            ]
        if options.order_by:
            docs.sort(key=lambda d: (d.get(options.order_by) is None, d.get(options.order_by)),
                      reverse=options.order_desc)
        if options.limit:
            docs = docs[:options.limit]
        return docs

    def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if doc["id"] in self._docs:
                raise PreconditionFailed(doc["id"])
            return self._write(doc)

    def upsert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            return self._write(doc)

    def replace(self, doc: Dict[str, Any], etag: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            current = self._docs.get(doc["id"])
            if current is None:
                raise DocumentNotFound(doc["id"])
            if etag is not None and current[ETAG_FIELD] != etag:
                raise PreconditionFailed(doc["id"])
            return self._write(doc)

    def delete(self, doc_id: str, etag: Optional[str] = None) -> bool:
        with self._lock:
            current = self._docs.get(doc_id)
            if current is None:
                return False
            if etag is not None and current[ETAG_FIELD] != etag:
                raise PreconditionFailed(doc_id)
            del self._docs[doc_id]
            return True


class MemoryClient:
    """Hands out one MemoryDocumentStore per logical container name."""

    def __init__(self):
        self._stores: Dict[str, MemoryDocumentStore] = {}

    def store(self, name: str) -> MemoryDocumentStore:
        if name not in self._stores:
            self._stores[name] = MemoryDocumentStore()
        return self._stores[name]
