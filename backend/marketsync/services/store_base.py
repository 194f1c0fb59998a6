"""
MarketSync Backend — Abstract Persistent Store Interface
==========================================================

What:  The contract every document store backend implements, plus the
       change-feed channel (`Subscription`) the backends hand out.
Why:   Managers depend on this interface only, so the in-memory store (tests,
       development) and the SQL store (deployments) are interchangeable.
How:   Concrete stores inherit from PersistentStore and implement every
       abstract coroutine. All of them are async and may suspend the caller.

Relationship fields:
    `append_to_array_field(..., unique=True)` has set-union semantics: two
    concurrent calls with the same value leave a single copy. Message logs pass
    unique=False to get plain list-append.

Server timestamps:
    Any top-level field (or top-level field of an appended dict) equal to
    SERVER_TIMESTAMP is replaced by the store's clock at write time.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel resolved to the store's current UTC time on write."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def resolve_server_timestamps(value: Any) -> Any:
    """Replace SERVER_TIMESTAMP sentinels one level deep."""
    if value is SERVER_TIMESTAMP:
        return utc_now_iso()
    if isinstance(value, dict):
        now = utc_now_iso()
        return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in value.items()}
    return value


class DocumentSnapshot(BaseModel):
    """A document as read from a store: id, body and write version."""

    id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    version: int = 0


SnapshotCallback = Callable[[DocumentSnapshot], Union[None, Awaitable[None]]]


class _Closed:
    pass


_CLOSED = _Closed()


class _Failure:
    def __init__(self, error: Exception):
        self.error = error


class Subscription:
    """
    A long-lived channel of whole-document snapshots for one document.

    Consumption styles:
        - async iteration: `async for snapshot in subscription: ...`
        - callback: pass `callback` to the store's subscribe(); a pump task
          invokes it for each snapshot

    Closing:
        close() is idempotent and takes effect immediately. Snapshots queued
        but not yet delivered are dropped, and no callback runs afterwards.
    """

    def __init__(
        self,
        collection: str,
        doc_id: str,
        on_close: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.collection = collection
        self.doc_id = doc_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._on_close = on_close
        self._pump_task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, snapshot: DocumentSnapshot) -> None:
        """Called by the owning store on every committed change."""
        if not self._closed:
            self._queue.put_nowait(snapshot)

    def fail(self, error: Exception) -> None:
        """Terminates the channel with an error for the consumer to observe."""
        if not self._closed:
            self._queue.put_nowait(_Failure(error))

    def attach(self, callback: SnapshotCallback) -> None:
        """Start pumping snapshots into `callback` (sync or async)."""
        if self._pump_task is not None:
            raise RuntimeError("Subscription already has a callback attached")
        self._pump_task = asyncio.create_task(self._pump(callback))

    async def _pump(self, callback: SnapshotCallback) -> None:
        try:
            async for snapshot in self:
                if self._closed:
                    break
                result = callback(snapshot)
                if inspect.isawaitable(result):
                    await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Subscription %s/%s terminated: %s",
                self.collection,
                self.doc_id,
                str(e),
                exc_info=True,
            )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)
        if self._pump_task is not None and self._pump_task is not asyncio.current_task():
            self._pump_task.cancel()
        logger.debug("Subscription closed: %s/%s", self.collection, self.doc_id)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> DocumentSnapshot:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if self._closed or item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self.close()
            raise item.error
        return item


class PersistentStore(ABC):
    """
    Abstract generic document store.

    Contract:
        - Every method is a coroutine and may raise TransientStoreError
        - Missing documents raise NotFoundError (never return None)
        - create() with an explicit id that exists raises ConflictError
        - list_all() returns documents in store iteration order
          (creation order for both bundled backends)
    """

    @abstractmethod
    async def list_all(self, collection: str) -> List[DocumentSnapshot]:
        ...

    @abstractmethod
    async def get_by_id(self, collection: str, doc_id: str) -> DocumentSnapshot:
        ...

    @abstractmethod
    async def create(
        self,
        collection: str,
        data: Dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        """Insert a document and return its id (generated when not given)."""
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Shallow-merge `fields` into the document."""
        ...

    @abstractmethod
    async def append_to_array_field(
        self,
        collection: str,
        doc_id: str,
        field: str,
        value: Any,
        unique: bool = True,
        merge: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Append `value` to the list stored in `field` (created if missing).

        `merge`, when given, is shallow-merged into the document in the same
        write. Returns False (and writes nothing) when unique=True and the
        value was already present.
        """
        ...

    @abstractmethod
    async def remove_from_array_field(
        self,
        collection: str,
        doc_id: str,
        field: str,
        value: Any,
    ) -> bool:
        """Remove every copy of `value`; returns whether anything was removed."""
        ...

    @abstractmethod
    async def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: Optional[SnapshotCallback] = None,
    ) -> Subscription:
        """
        Attach to the document's change feed.

        The current snapshot is delivered first, then one snapshot per
        committed change. Raises NotFoundError if the document is absent.
        """
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Lightweight reachability probe for the health endpoint."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections and close every open subscription."""
        ...
