"""
MarketSync Backend — SQL Document Store
=========================================

What:  PersistentStore backed by one `documents` table via async SQLAlchemy.
Why:   Gives deployments a durable store with the same document semantics
       as the managed store the product was designed around.
How:   Each operation runs in its own session/transaction. Read-modify-write
       operations lock the row (SELECT ... FOR UPDATE, a no-op on SQLite where
       writers are serialized anyway) so set-union appends stay duplicate-free
       under concurrent callers.

Change feed (polling):
    subscribe() delivers the current body, then starts a task that polls the
    row's `version` column every `subscription_poll_interval` seconds and
    publishes a fresh snapshot whenever it moves. A failed poll is retried
    with tenacity (exponential backoff + jitter); when retries are exhausted
    the subscription is failed with TransientStoreError. The retries are the
    store's own transport concern; manager operations are never retried.

Error translation:
    IntegrityError on create with an explicit id → ConflictError
    Any other SQLAlchemyError                    → TransientStoreError
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from marketsync.config import settings
from marketsync.database import create_engine_and_sessions, dispose_engine
from marketsync.exceptions import ConflictError, NotFoundError, TransientStoreError
from marketsync.models.document import Document
from marketsync.services.store_base import (
    DocumentSnapshot,
    PersistentStore,
    SnapshotCallback,
    Subscription,
    resolve_server_timestamps,
)

logger = logging.getLogger(__name__)


def _to_snapshot(row: Document) -> DocumentSnapshot:
    return DocumentSnapshot(id=row.id, data=dict(row.data or {}), version=row.version)


class SqlDocumentStore(PersistentStore):
    """
    Document store over a relational database.

    Owns its engine; `close()` disposes it. Build with `from_url()` in
    application code, or pass an engine/session factory pair in tests.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        poll_interval: Optional[float] = None,
    ):
        self.engine = engine
        self._sessions = session_factory
        self._poll_interval = poll_interval or settings.subscription_poll_interval
        self._poll_tasks: Set[asyncio.Task] = set()
        self._subscriptions: Set[Subscription] = set()

    @classmethod
    def from_url(cls, database_url: str, poll_interval: Optional[float] = None) -> "SqlDocumentStore":
        engine, session_factory = create_engine_and_sessions(database_url)
        return cls(engine, session_factory, poll_interval=poll_interval)

    # ── Internal helpers ──────────────────────────────────────────────────

    async def _locked_row(self, session: AsyncSession, collection: str, doc_id: str) -> Document:
        result = await session.execute(
            select(Document)
            .where(Document.collection == collection, Document.id == doc_id)
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(resource=f"{collection} document", resource_id=doc_id)
        return row

    @staticmethod
    def _store_failure(operation: str, collection: str, error: Exception) -> TransientStoreError:
        logger.error(
            "SQL store %s on '%s' failed: %s",
            operation,
            collection,
            str(error),
            exc_info=True,
        )
        return TransientStoreError(
            context={"operation": operation, "collection": collection, "error_type": type(error).__name__},
        )

    # ── PersistentStore API ───────────────────────────────────────────────

    async def list_all(self, collection: str) -> List[DocumentSnapshot]:
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(Document)
                    .where(Document.collection == collection)
                    .order_by(Document.created_at, Document.id)
                )
                return [_to_snapshot(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._store_failure("list_all", collection, e)

    async def get_by_id(self, collection: str, doc_id: str) -> DocumentSnapshot:
        try:
            async with self._sessions() as session:
                row = await session.get(Document, (collection, doc_id))
        except SQLAlchemyError as e:
            raise self._store_failure("get_by_id", collection, e)
        if row is None:
            raise NotFoundError(resource=f"{collection} document", resource_id=doc_id)
        return _to_snapshot(row)

    async def create(
        self,
        collection: str,
        data: Dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        new_id = doc_id or uuid.uuid4().hex
        try:
            async with self._sessions() as session:
                session.add(
                    Document(
                        collection=collection,
                        id=new_id,
                        data=resolve_server_timestamps(data),
                        version=1,
                    )
                )
                await session.commit()
        except IntegrityError as e:
            if doc_id is not None:
                raise ConflictError(collection=collection, doc_id=doc_id)
            raise self._store_failure("create", collection, e)
        except SQLAlchemyError as e:
            raise self._store_failure("create", collection, e)
        return new_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        try:
            async with self._sessions() as session:
                row = await self._locked_row(session, collection, doc_id)
                # New dict so the JSON column registers the change
                row.data = {**(row.data or {}), **resolve_server_timestamps(fields)}
                row.version += 1
                await session.commit()
        except SQLAlchemyError as e:
            raise self._store_failure("update", collection, e)

    async def append_to_array_field(
        self,
        collection: str,
        doc_id: str,
        field: str,
        value: Any,
        unique: bool = True,
        merge: Optional[Dict[str, Any]] = None,
    ) -> bool:
        try:
            async with self._sessions() as session:
                row = await self._locked_row(session, collection, doc_id)
                body = dict(row.data or {})
                values = list(body.get(field) or [])
                if unique and value in values:
                    return False
                values.append(resolve_server_timestamps(value))
                body[field] = values
                if merge:
                    body.update(resolve_server_timestamps(merge))
                row.data = body
                row.version += 1
                await session.commit()
                return True
        except SQLAlchemyError as e:
            raise self._store_failure("append_to_array_field", collection, e)

    async def remove_from_array_field(
        self,
        collection: str,
        doc_id: str,
        field: str,
        value: Any,
    ) -> bool:
        try:
            async with self._sessions() as session:
                row = await self._locked_row(session, collection, doc_id)
                body = dict(row.data or {})
                values = list(body.get(field) or [])
                remaining = [v for v in values if v != value]
                if len(remaining) == len(values):
                    return False
                body[field] = remaining
                row.data = body
                row.version += 1
                await session.commit()
                return True
        except SQLAlchemyError as e:
            raise self._store_failure("remove_from_array_field", collection, e)

    # ── Change feed ───────────────────────────────────────────────────────

    async def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: Optional[SnapshotCallback] = None,
    ) -> Subscription:
        current = await self.get_by_id(collection, doc_id)
        subscription = Subscription(collection, doc_id, on_close=self._subscriptions.discard)
        self._subscriptions.add(subscription)
        subscription.publish(current)

        task = asyncio.create_task(self._poll(subscription, current.version))
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)

        if callback is not None:
            subscription.attach(callback)
        return subscription

    async def _fetch_if_newer(
        self, collection: str, doc_id: str, seen_version: int
    ) -> Optional[DocumentSnapshot]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Document.version).where(
                    Document.collection == collection, Document.id == doc_id
                )
            )
            version = result.scalar_one_or_none()
            if version is None or version == seen_version:
                return None
            row = await session.get(Document, (collection, doc_id))
            return _to_snapshot(row) if row is not None else None

    async def _poll(self, subscription: Subscription, seen_version: int) -> None:
        while not subscription.closed:
            await asyncio.sleep(self._poll_interval)
            if subscription.closed:
                break
            try:
                async for attempt in AsyncRetrying(
                    retry=retry_if_exception_type(SQLAlchemyError),
                    stop=stop_after_attempt(settings.poll_retry_attempts),
                    wait=wait_exponential_jitter(
                        initial=settings.poll_retry_min_wait,
                        max=settings.poll_retry_max_wait,
                    ),
                    before_sleep=before_sleep_log(logger, logging.WARNING),
                    reraise=True,
                ):
                    with attempt:
                        snapshot = await self._fetch_if_newer(
                            subscription.collection, subscription.doc_id, seen_version
                        )
            except (SQLAlchemyError, RetryError) as e:
                subscription.fail(self._store_failure("poll", subscription.collection, e))
                return
            if snapshot is not None and not subscription.closed:
                seen_version = snapshot.version
                subscription.publish(snapshot)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("SQL store ping failed: %s", str(e))
            return False

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()
        for task in list(self._poll_tasks):
            task.cancel()
        if self._poll_tasks:
            await asyncio.gather(*self._poll_tasks, return_exceptions=True)
        await dispose_engine(self.engine)
