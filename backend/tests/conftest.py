"""
MarketSync Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures: an in-memory store seeded with a small
       marketplace, the managers built around it, and an HTTP client.

Seeded marketplace:
    users:   c1 (consumer, follows p1), c2 (consumer, follows nobody),
             p1 / p2 (providers), g1 (guest)
    explore: i1 (p1, Hair), i2 (p2, Nails), i3 (p1, Makeup),
             broken (no url; skipped by the feeds)

Fixture Hierarchy (all function-scoped):
    store ─┬─ identity ─┬─ follows / feed / conversations / registrar
           │            └─ seeded (store after seed_marketplace)
           └─ container ── test_client (httpx AsyncClient over ASGITransport)
"""

import os

# Before any marketsync import: settings are read at import time
os.environ["STORE_BACKEND"] = "memory"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from marketsync.dependencies import ServiceContainer
from marketsync.schemas.domain import Role, UserRecord
from marketsync.services.conversation_service import ConversationManager
from marketsync.services.feed_service import FeedComposer
from marketsync.services.follow_service import FollowGraphManager
from marketsync.services.identity_service import IdentityStoreAdapter
from marketsync.services.memory_store import MemoryDocumentStore
from marketsync.services.registrar_service import Registrar


USERS = [
    UserRecord(id="c1", role=Role.CONSUMER, name="Casey", email="casey@example.com", followed=["p1"]),
    UserRecord(id="c2", role=Role.CONSUMER, name="Jordan", email="jordan@example.com"),
    UserRecord(
        id="p1",
        role=Role.PROVIDER,
        name="Maya Styles",
        email="maya@example.com",
        profession="Hair Stylist",
        rating=4.8,
        profile_picture="https://img.example.com/maya.jpg",
    ),
    UserRecord(id="p2", role=Role.PROVIDER, name="Nina Nails", email="nina@example.com", profession="Nail Artist"),
    UserRecord(id="g1", role=Role.GUEST, name="Guest"),
]

ITEMS = {
    "i1": {"url": "https://img.example.com/i1.jpg", "category": "Hair", "provider_id": "p1", "provider_name": "Maya Styles", "likes": 12},
    "i2": {"url": "https://img.example.com/i2.jpg", "category": "Nails", "provider_id": "p2", "provider_name": "Nina Nails"},
    "i3": {"url": "https://img.example.com/i3.jpg", "category": "Makeup", "provider_id": "p1", "provider_name": "Maya Styles"},
    "broken": {"category": "Hair", "provider_id": "p2", "provider_name": "Nina Nails"},
}


async def seed_marketplace(store: MemoryDocumentStore) -> MemoryDocumentStore:
    """Write USERS and ITEMS into `store`. Usable outside pytest-asyncio too."""
    identity = IdentityStoreAdapter(store)
    for user in USERS:
        await identity.create_user(user)
    for item_id, data in ITEMS.items():
        await store.create("explore", dict(data), doc_id=item_id)
    return store


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def identity(store):
    return IdentityStoreAdapter(store)


@pytest_asyncio.fixture
async def seeded(store):
    await seed_marketplace(store)
    yield store
    await store.close()


@pytest.fixture
def follows(identity):
    return FollowGraphManager(identity)


@pytest.fixture
def feed(store, identity):
    return FeedComposer(store, identity)


@pytest.fixture
def conversations(store, identity):
    manager = ConversationManager(store, identity)
    yield manager
    manager.close_all()


@pytest.fixture
def registrar(store, identity):
    return Registrar(store, identity)


@pytest.fixture
def container(store):
    return ServiceContainer(store=store)


@pytest_asyncio.fixture
async def test_client(seeded, container):
    """
    HTTPX AsyncClient wired to an app that uses the seeded container.

    ASGITransport does not run the lifespan, so the injected container is
    the only one the app ever sees.
    """
    from marketsync.main import create_app

    app = create_app(container=container)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
