"""
MarketSync Backend — Feed Composer
====================================

What:  Derives the two read-only feeds over the content item collection.
How:   Pure view functions do the filtering; FeedComposer fetches the whole
       collection per call and wraps the outcome in a FeedResult.

Views:
    Catalog:       every item whose provider name OR category contains the
                   search text (case-insensitive), restricted to one category
                   unless the category is "All". Independent of follows.
    Personalized:  only items whose owning provider is in the viewer's
                   followed set. Guests, anonymous viewers and viewers who
                   follow nobody get an empty (not failed) feed.

Ordering is store iteration order; there is no ranking or pagination.

Empty vs error:
    A fetch that succeeds with zero items  → FeedResult(status="ready", items=[])
    A fetch that raises                    → FeedResult(status="error", error=...)
"""

import logging
from typing import Collection, Iterable, List, Optional

import pydantic

from marketsync.config import settings
from marketsync.exceptions import MarketSyncError, NotFoundError
from marketsync.schemas.domain import ALL_CATEGORIES, ContentItem, FeedResult
from marketsync.services.identity_service import IdentityStoreAdapter
from marketsync.services.store_base import PersistentStore

logger = logging.getLogger(__name__)

FEED_UNAVAILABLE = "We couldn't load posts right now. Please try again."


# ── Pure views ────────────────────────────────────────────────────────────


def matches_search(item: ContentItem, query: str) -> bool:
    if not query:
        return True
    needle = query.lower()
    return needle in item.provider.name.lower() or needle in item.category.lower()


def matches_category(item: ContentItem, category: Optional[str]) -> bool:
    return not category or category == ALL_CATEGORIES or item.category == category


def catalog_view(
    items: Iterable[ContentItem],
    query: str = "",
    category: Optional[str] = ALL_CATEGORIES,
) -> List[ContentItem]:
    return [
        item for item in items
        if matches_search(item, query) and matches_category(item, category)
    ]


def personalized_view(items: Iterable[ContentItem], followed: Collection[str]) -> List[ContentItem]:
    if not followed:
        return []
    followed_set = set(followed)
    return [item for item in items if item.provider.id in followed_set]


def map_documents(snapshots) -> List[ContentItem]:
    """Map fetched documents to items, skipping the ones that cannot be rendered."""
    items = []
    for snapshot in snapshots:
        try:
            item = ContentItem.from_snapshot(snapshot)
        except pydantic.ValidationError as e:
            logger.warning(
                "Feed document %s is malformed (%d field errors); skipping",
                snapshot.id,
                e.error_count(),
            )
            continue
        if item is not None:
            items.append(item)
    return items


# ── Composer ──────────────────────────────────────────────────────────────


class FeedComposer:
    """Loads the item collection and applies the catalog/personalized views."""

    def __init__(
        self,
        store: PersistentStore,
        identity: IdentityStoreAdapter,
        collection: Optional[str] = None,
    ):
        self.store = store
        self.identity = identity
        self.collection = collection or settings.feed_collection

    async def load_items(self) -> List[ContentItem]:
        """Fetch and map the whole collection. Raises on store failure."""
        snapshots = await self.store.list_all(self.collection)
        items = map_documents(snapshots)
        logger.debug("Loaded %d feed items (%d documents)", len(items), len(snapshots))
        return items

    async def catalog(self, query: str = "", category: Optional[str] = ALL_CATEGORIES) -> FeedResult:
        try:
            items = await self.load_items()
        except MarketSyncError as e:
            logger.error("Catalog fetch failed: %s", e.message)
            return FeedResult.failed(FEED_UNAVAILABLE)
        return FeedResult.ready(catalog_view(items, query, category))

    async def personalized(
        self,
        viewer_id: Optional[str],
        followed: Optional[Collection[str]] = None,
    ) -> FeedResult:
        """
        Items from providers the viewer follows.

        Args:
            viewer_id: None for anonymous viewers
            followed:  the caller's current follow state (e.g. the values of
                       its OptimisticMirror). When omitted, the viewer's
                       profile is read and guests get an empty feed.

        A viewer with no follows never triggers the item fetch.
        """
        if not viewer_id:
            return FeedResult.ready([])

        try:
            if followed is None:
                viewer = await self.identity.get_user(viewer_id)
                if viewer.is_guest:
                    return FeedResult.ready([])
                followed = viewer.followed
            if not followed:
                return FeedResult.ready([])
            items = await self.load_items()
        except NotFoundError:
            # Unknown viewer behaves like an anonymous one
            logger.warning("Personalized feed requested for unknown viewer %s", viewer_id)
            return FeedResult.ready([])
        except MarketSyncError as e:
            logger.error("Personalized feed fetch failed for %s: %s", viewer_id, e.message)
            return FeedResult.failed(FEED_UNAVAILABLE)

        return FeedResult.ready(personalized_view(items, followed))

    async def get_item(self, item_id: str) -> ContentItem:
        try:
            snapshot = await self.store.get_by_id(self.collection, item_id)
        except NotFoundError:
            raise NotFoundError(resource="post", resource_id=item_id)
        items = map_documents([snapshot])
        if not items:
            raise NotFoundError(resource="post", resource_id=item_id)
        return items[0]
