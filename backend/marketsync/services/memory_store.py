"""
MarketSync Backend — In-Memory Document Store
===============================================

What:  Process-local implementation of PersistentStore.
Who:   Default backend for development, and the store used by the test suite.
How:   Collections are dicts of JSON-ready bodies keyed by id (insertion order
       is iteration order). Every operation yields to the event loop once
       before touching state, so concurrently issued calls interleave the way
       remote calls would, while each individual write stays atomic.

Change feed:
    Subscribers are registered per (collection, id). A write publishes a deep
    copy of the new body to each of them, in commit order.
"""

import asyncio
import copy
import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Tuple

from marketsync.exceptions import ConflictError, NotFoundError
from marketsync.services.store_base import (
    DocumentSnapshot,
    PersistentStore,
    SnapshotCallback,
    Subscription,
    resolve_server_timestamps,
)

logger = logging.getLogger(__name__)


class MemoryDocumentStore(PersistentStore):
    """Dict-backed document store with synchronous fan-out to subscribers."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._versions: Dict[Tuple[str, str], int] = {}
        self._watchers: Dict[Tuple[str, str], Set[Subscription]] = defaultdict(set)

    # ── Internal helpers ──────────────────────────────────────────────────

    def _require(self, collection: str, doc_id: str) -> Dict[str, Any]:
        body = self._collections[collection].get(doc_id)
        if body is None:
            raise NotFoundError(resource=f"{collection} document", resource_id=doc_id)
        return body

    def _snapshot(self, collection: str, doc_id: str) -> DocumentSnapshot:
        return DocumentSnapshot(
            id=doc_id,
            data=copy.deepcopy(self._collections[collection][doc_id]),
            version=self._versions.get((collection, doc_id), 0),
        )

    def _commit(self, collection: str, doc_id: str, body: Dict[str, Any]) -> None:
        key = (collection, doc_id)
        self._collections[collection][doc_id] = body
        self._versions[key] = self._versions.get(key, 0) + 1
        watchers = self._watchers.get(key)
        if watchers:
            snapshot = self._snapshot(collection, doc_id)
            for subscription in list(watchers):
                subscription.publish(snapshot.model_copy(deep=True))

    def _forget(self, subscription: Subscription) -> None:
        self._watchers[(subscription.collection, subscription.doc_id)].discard(subscription)

    # ── PersistentStore API ───────────────────────────────────────────────

    async def list_all(self, collection: str) -> List[DocumentSnapshot]:
        await asyncio.sleep(0)
        return [self._snapshot(collection, doc_id) for doc_id in list(self._collections[collection])]

    async def get_by_id(self, collection: str, doc_id: str) -> DocumentSnapshot:
        await asyncio.sleep(0)
        self._require(collection, doc_id)
        return self._snapshot(collection, doc_id)

    async def create(
        self,
        collection: str,
        data: Dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        await asyncio.sleep(0)
        new_id = doc_id or uuid.uuid4().hex
        if new_id in self._collections[collection]:
            raise ConflictError(collection=collection, doc_id=new_id)
        self._commit(collection, new_id, copy.deepcopy(resolve_server_timestamps(data)))
        logger.debug("Created %s/%s", collection, new_id)
        return new_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        await asyncio.sleep(0)
        body = copy.deepcopy(self._require(collection, doc_id))
        body.update(copy.deepcopy(resolve_server_timestamps(fields)))
        self._commit(collection, doc_id, body)

    async def append_to_array_field(
        self,
        collection: str,
        doc_id: str,
        field: str,
        value: Any,
        unique: bool = True,
        merge: Optional[Dict[str, Any]] = None,
    ) -> bool:
        await asyncio.sleep(0)
        body = copy.deepcopy(self._require(collection, doc_id))
        values = list(body.get(field) or [])
        if unique and value in values:
            return False
        values.append(copy.deepcopy(resolve_server_timestamps(value)))
        body[field] = values
        if merge:
            body.update(copy.deepcopy(resolve_server_timestamps(merge)))
        self._commit(collection, doc_id, body)
        return True

    async def remove_from_array_field(
        self,
        collection: str,
        doc_id: str,
        field: str,
        value: Any,
    ) -> bool:
        await asyncio.sleep(0)
        body = copy.deepcopy(self._require(collection, doc_id))
        values = list(body.get(field) or [])
        remaining = [v for v in values if v != value]
        if len(remaining) == len(values):
            return False
        body[field] = remaining
        self._commit(collection, doc_id, body)
        return True

    async def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: Optional[SnapshotCallback] = None,
    ) -> Subscription:
        await asyncio.sleep(0)
        self._require(collection, doc_id)
        subscription = Subscription(collection, doc_id, on_close=self._forget)
        self._watchers[(collection, doc_id)].add(subscription)
        subscription.publish(self._snapshot(collection, doc_id))
        if callback is not None:
            subscription.attach(callback)
        return subscription

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        for watchers in list(self._watchers.values()):
            for subscription in list(watchers):
                subscription.close()
        self._watchers.clear()
