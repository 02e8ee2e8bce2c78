"""
Document store contract and the in-memory implementation.
"""

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

Document = Dict[str, Any]


class DocumentStore(ABC):
    """Single collection of JSON documents keyed by ``id``.

    Filters use JSON containment: every key in the filter must be present in
    the document with an equal value; nested objects are matched recursively
    and a list in the filter matches when each of its elements is contained in
    some element of the document's list.
    """

    def __init__(self, collection: str):
        self.collection = collection

    @abstractmethod
    async def find(self, filter: Optional[Document] = None) -> List[Document]:
        """Return documents matching ``filter`` in insertion order."""

    @abstractmethod
    async def find_by_id(self, document_id: str) -> Optional[Document]:
        """Return a document by id, or None."""

    @abstractmethod
    async def save(self, document: Document) -> Document:
        """Insert or replace a whole document; returns the stored copy.

        Assigns ``id`` and ``created_at`` when missing and always refreshes
        ``updated_at``. Returns only after the write is acknowledged.
        """

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Delete a document; False when it did not exist."""

    async def find_one(self, filter: Document) -> Optional[Document]:
        documents = await self.find(filter)
        return documents[0] if documents else None

    async def count(self, filter: Optional[Document] = None) -> int:
        return len(await self.find(filter))

    async def health_check(self) -> bool:
        return True


def new_document_id() -> str:
    return uuid.uuid4().hex


def stamp(document: Document) -> Document:
    """Fill identity and timestamps on a copy of ``document``."""
    stamped = dict(document)
    now = datetime.now(timezone.utc).isoformat()
    stamped.setdefault("id", new_document_id())
    if not stamped.get("created_at"):
        stamped["created_at"] = now
    stamped["updated_at"] = now
    return stamped


def contains(document: Any, filter: Any) -> bool:
    """JSON containment test with the same semantics as PostgreSQL ``@>``."""
    if isinstance(filter, dict):
        if not isinstance(document, dict):
            return False
        return all(key in document and contains(document[key], value) for key, value in filter.items())
    if isinstance(filter, list):
        if not isinstance(document, list):
            return False
        return all(any(contains(item, wanted) for item in document) for wanted in filter)
    return document == filter


class InMemoryDocumentStore(DocumentStore):
    """Process-local document store for local runs and tests."""

    def __init__(self, collection: str):
        super().__init__(collection)
        self._documents: Dict[str, Document] = {}
        self._lock = asyncio.Lock()

    async def find(self, filter: Optional[Document] = None) -> List[Document]:
        return [
            copy.deepcopy(document)
            for document in self._documents.values()
            if not filter or contains(document, filter)
        ]

    async def find_by_id(self, document_id: str) -> Optional[Document]:
        document = self._documents.get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def save(self, document: Document) -> Document:
        stored = stamp(copy.deepcopy(document))
        async with self._lock:
            self._documents[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def delete(self, document_id: str) -> bool:
        async with self._lock:
            return self._documents.pop(document_id, None) is not None
