"""In-memory document store."""
import asyncio
import copy
from typing import Any, Dict, List, Optional

from circulation.core.exceptions import DocumentNotFoundError, VersionConflictError
from circulation.store.base import Document, new_id, normalize_value


class MemoryDocumentStore:
    """
    Dict-based in-memory store keyed by collection and id.

    Payloads are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._storage: Dict[str, Dict[str, Document]] = {}
        self._lock = asyncio.Lock()

    def _collection(self, collection: str) -> Dict[str, Document]:
        return self._storage.setdefault(collection, {})

    @staticmethod
    def _snapshot(doc: Document) -> Document:
        return Document(doc.collection, doc.id, doc.version, copy.deepcopy(doc.data))

    async def get(self, collection: str, id: str) -> Document:
        try:
            return self._snapshot(self._collection(collection)[id])
        except KeyError:
            raise DocumentNotFoundError(collection, id)

    async def query(self, collection: str, **equals: Any) -> List[Document]:
        wanted = {k: normalize_value(v) for k, v in equals.items()}
        return [
            self._snapshot(doc)
            for doc in self._collection(collection).values()
            if all(doc.data.get(k) == v for k, v in wanted.items())
        ]

    async def create(self, collection: str, data: dict, id: Optional[str] = None) -> Document:
        async with self._lock:
            docs = self._collection(collection)
            doc_id = id or new_id(collection.rstrip("s"))
            if doc_id in docs:
                raise VersionConflictError(collection, doc_id)
            doc = Document(collection, doc_id, 1, copy.deepcopy(data))
            docs[doc_id] = doc
            return self._snapshot(doc)

    async def update(
        self, collection: str, id: str, data: dict, expected_version: int
    ) -> Document:
        async with self._lock:
            docs = self._collection(collection)
            if id not in docs:
                raise DocumentNotFoundError(collection, id)
            current = docs[id]
            if current.version != expected_version:
                raise VersionConflictError(collection, id, expected_version)
            doc = Document(collection, id, current.version + 1, copy.deepcopy(data))
            docs[id] = doc
            return self._snapshot(doc)

    async def delete(
        self, collection: str, id: str, expected_version: Optional[int] = None
    ) -> None:
        async with self._lock:
            docs = self._collection(collection)
            if id not in docs:
                raise DocumentNotFoundError(collection, id)
            if expected_version is not None and docs[id].version != expected_version:
                raise VersionConflictError(collection, id, expected_version)
            del docs[id]
