"""
MarketSync Backend — Service Container
========================================

What:  Builds the store and every manager once per application and hands
       them to route handlers.
How:   build_container() picks the store backend from settings and wires the
       managers with explicit constructor arguments. The container is kept on
       `app.state.container`; handlers receive pieces of it through FastAPI
       dependencies (`Depends(get_follows)` etc.).

Tests build a container around a MemoryDocumentStore and pass it to
create_app(container=...), so no store is created at import time.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from starlette.requests import HTTPConnection

from marketsync.config import Settings, settings as default_settings
from marketsync.database import create_schema
from marketsync.services.conversation_service import ConversationManager
from marketsync.services.feed_service import FeedComposer
from marketsync.services.follow_service import FollowGraphManager
from marketsync.services.identity_service import IdentityStoreAdapter
from marketsync.services.memory_store import MemoryDocumentStore
from marketsync.services.registrar_service import Registrar
from marketsync.services.sql_store import SqlDocumentStore
from marketsync.services.store_base import PersistentStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler may need, built around one store."""

    store: PersistentStore
    backend: str = "memory"
    identity: IdentityStoreAdapter = field(init=False)
    follows: FollowGraphManager = field(init=False)
    feed: FeedComposer = field(init=False)
    conversations: ConversationManager = field(init=False)
    registrar: Registrar = field(init=False)

    def __post_init__(self):
        self.identity = IdentityStoreAdapter(self.store)
        self.follows = FollowGraphManager(self.identity)
        self.feed = FeedComposer(self.store, self.identity)
        self.conversations = ConversationManager(self.store, self.identity)
        self.registrar = Registrar(self.store, self.identity)

    async def close(self) -> None:
        """Close live conversation streams, then the store itself."""
        self.conversations.close_all()
        await self.store.close()
        logger.info("Service container closed (%s store)", self.backend)


async def build_container(config: Optional[Settings] = None) -> ServiceContainer:
    """
    Create the configured store and wire the managers around it.

    SQLite databases get their table created on the spot; server databases
    are expected to be migrated with Alembic beforehand.
    """
    config = config or default_settings
    if config.store_backend == "sql":
        store = SqlDocumentStore.from_url(
            config.database_url, poll_interval=config.subscription_poll_interval
        )
        if config.database_url.startswith("sqlite"):
            await create_schema(store.engine)
        logger.info("Using SQL document store")
    else:
        store = MemoryDocumentStore()
        logger.info("Using in-memory document store (data is lost on restart)")
    return ServiceContainer(store=store, backend=config.store_backend)


# ── FastAPI dependencies ──────────────────────────────────────────────────
# HTTPConnection covers both Request and WebSocket handlers.


def get_container(connection: HTTPConnection) -> ServiceContainer:
    return connection.app.state.container


def get_follows(connection: HTTPConnection) -> FollowGraphManager:
    return get_container(connection).follows


def get_feed(connection: HTTPConnection) -> FeedComposer:
    return get_container(connection).feed


def get_conversations(connection: HTTPConnection) -> ConversationManager:
    return get_container(connection).conversations


def get_registrar(connection: HTTPConnection) -> Registrar:
    return get_container(connection).registrar
