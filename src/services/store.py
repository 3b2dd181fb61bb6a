from __future__ import annotations

import copy
import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

# (document id, document data)
Document = Tuple[str, Dict[str, Any]]


class StoreError(RuntimeError):
    pass


class SourceUnavailable(StoreError):
    """A venue collection could not be read."""


class WriteFailed(StoreError):
    """Creating a venue or rating record failed."""


class DocumentStore(Protocol):
    async def fetch_all(self, collection: str) -> List[Document]: ...

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]: ...

    async def query_equal(self, collection: str, field: str, value: Any) -> List[Document]: ...

    async def query_in(self, collection: str, field: str, values: Sequence[Any]) -> List[Document]: ...

    async def add(self, collection: str, data: Dict[str, Any]) -> str: ...

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None: ...


class InMemoryStore:
    """Dict-backed document store used for local runs and tests.

    Collections listed in ``failing`` raise ``StoreError`` on every call so the
    partial-failure paths can be exercised.
    """

    def __init__(self, collections: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = copy.deepcopy(collections or {})
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def _collection(self, name: str, op: str) -> Dict[str, Dict[str, Any]]:
        self.calls.append((op, name))
        if name in self.failing:
            raise StoreError(f"collection {name} unavailable")
        return self._collections.setdefault(name, {})

    async def fetch_all(self, collection: str) -> List[Document]:
        docs = self._collection(collection, "fetch_all")
        return [(doc_id, copy.deepcopy(data)) for doc_id, data in docs.items()]

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._collection(collection, "get").get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def query_equal(self, collection: str, field: str, value: Any) -> List[Document]:
        docs = self._collection(collection, "query_equal")
        return [(doc_id, copy.deepcopy(data)) for doc_id, data in docs.items() if data.get(field) == value]

    async def query_in(self, collection: str, field: str, values: Sequence[Any]) -> List[Document]:
        docs = self._collection(collection, "query_in")
        wanted = set(values)
        return [(doc_id, copy.deepcopy(data)) for doc_id, data in docs.items() if data.get(field) in wanted]

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        docs = self._collection(collection, "add")
        doc_id = uuid.uuid4().hex[:20]
        docs[doc_id] = copy.deepcopy(data)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        docs = self._collection(collection, "set")
        docs[doc_id] = copy.deepcopy(data)
