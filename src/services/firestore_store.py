from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Sequence

from google.api_core.exceptions import GoogleAPIError
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2 import service_account
from loguru import logger

from config import Configuration
from services.store import Document, StoreError
from utils import chunked

# Firestore rejects "in" filters with more values than this.
IN_QUERY_LIMIT = 10

SECRET_PATH = "/etc/secrets/service-account.json"


def get_firestore_client(cfg: Configuration) -> firestore.AsyncClient:
    if os.path.exists(SECRET_PATH):
        with open(SECRET_PATH) as f:
            info = json.load(f)
        creds = service_account.Credentials.from_service_account_info(info)
        return firestore.AsyncClient(credentials=creds, project=info["project_id"])
    return firestore.AsyncClient(project=cfg.firestore_project)


class FirestoreStore:
    def __init__(self, client: firestore.AsyncClient) -> None:
        self.client = client

    async def _stream(self, query: Any, label: str) -> List[Document]:
        try:
            return [(snap.id, snap.to_dict() or {}) async for snap in query.stream()]
        except GoogleAPIError as exc:
            raise StoreError(f"{label}: {exc}") from exc

    async def fetch_all(self, collection: str) -> List[Document]:
        return await self._stream(self.client.collection(collection), f"fetch {collection}")

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            snap = await self.client.collection(collection).document(doc_id).get()
        except GoogleAPIError as exc:
            raise StoreError(f"get {collection}/{doc_id}: {exc}") from exc
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    async def query_equal(self, collection: str, field: str, value: Any) -> List[Document]:
        query = self.client.collection(collection).where(filter=FieldFilter(field, "==", value))
        return await self._stream(query, f"query {collection}.{field}")

    async def query_in(self, collection: str, field: str, values: Sequence[Any]) -> List[Document]:
        results: List[Document] = []
        for chunk in chunked(list(values), IN_QUERY_LIMIT):
            query = self.client.collection(collection).where(filter=FieldFilter(field, "in", chunk))
            results.extend(await self._stream(query, f"query {collection}.{field} in"))
        logger.debug("firestore {} {} in {} values -> {} docs", collection, field, len(values), len(results))
        return results

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        try:
            _, ref = await self.client.collection(collection).add(data)
        except GoogleAPIError as exc:
            raise StoreError(f"add {collection}: {exc}") from exc
        return ref.id

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        try:
            await self.client.collection(collection).document(doc_id).set(data)
        except GoogleAPIError as exc:
            raise StoreError(f"set {collection}/{doc_id}: {exc}") from exc
