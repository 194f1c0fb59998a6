"""
MarketSync Backend — Feed Composer Tests
==========================================

What we test:
    ✅ catalog search (provider name or category) and category filter
    ✅ personalized feed only contains followed providers
    ✅ guests, anonymous and follow-less viewers get an empty ready feed
    ✅ a failed fetch is an error result, never an empty one
    ✅ document mapping defaults and skipped documents
    ✅ the c1/p1/p2 walkthrough across follows and both feeds
"""

from unittest.mock import AsyncMock

import pytest

from marketsync.exceptions import NotFoundError, TransientStoreError
from marketsync.schemas.domain import ContentItem, FeedResult, category_counts
from marketsync.services.feed_service import FEED_UNAVAILABLE, FeedComposer, catalog_view
from marketsync.services.store_base import DocumentSnapshot


def _ids(result: FeedResult):
    return [item.id for item in result.items]


class TestCatalog:

    @pytest.mark.asyncio
    async def test_catalog_lists_every_renderable_item(self, seeded, feed):
        result = await feed.catalog()
        assert result.status == "ready"
        assert _ids(result) == ["i1", "i2", "i3"]

    @pytest.mark.asyncio
    async def test_search_matches_provider_name_case_insensitively(self, seeded, feed):
        assert _ids(await feed.catalog("maya")) == ["i1", "i3"]

    @pytest.mark.asyncio
    async def test_search_matches_category(self, seeded, feed):
        assert _ids(await feed.catalog("NAIL")) == ["i2"]

    @pytest.mark.asyncio
    async def test_category_filter(self, seeded, feed):
        assert _ids(await feed.catalog(category="Makeup")) == ["i3"]
        assert _ids(await feed.catalog("maya", category="Hair")) == ["i1"]
        assert _ids(await feed.catalog(category="All")) == ["i1", "i2", "i3"]

    @pytest.mark.asyncio
    async def test_no_match_is_empty_not_error(self, seeded, feed):
        result = await feed.catalog("zzz")
        assert result.is_empty
        assert not result.is_error

    @pytest.mark.asyncio
    async def test_store_failure_is_error_result(self, identity):
        store = AsyncMock()
        store.list_all.side_effect = TransientStoreError()
        result = await FeedComposer(store, identity).catalog()

        assert result.is_error
        assert result.error == FEED_UNAVAILABLE
        assert not result.is_empty

    @pytest.mark.asyncio
    async def test_malformed_document_is_skipped(self, seeded, feed):
        await seeded.create(
            "explore",
            {"url": "https://img.example.com/bad.jpg", "provider_id": "p1", "likes": "lots"},
            doc_id="bad-likes",
        )

        catalog = await feed.catalog()
        personalized = await feed.personalized("c1")

        assert catalog.status == "ready"
        assert _ids(catalog) == ["i1", "i2", "i3"]
        assert _ids(personalized) == ["i1", "i3"]


class TestPersonalized:

    @pytest.mark.asyncio
    async def test_only_followed_providers(self, seeded, feed):
        assert _ids(await feed.personalized("c1")) == ["i1", "i3"]

    @pytest.mark.asyncio
    async def test_followed_override_skips_profile_read(self, seeded, feed):
        assert _ids(await feed.personalized("c1", followed=["p2"])) == ["i2"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("viewer_id", [None, "", "g1", "c2", "ghost"])
    async def test_viewers_without_follows_get_empty_feed(self, seeded, feed, viewer_id):
        result = await feed.personalized(viewer_id)
        assert result.status == "ready"
        assert result.items == []

    @pytest.mark.asyncio
    async def test_no_follows_never_fetches_items(self, identity):
        store = AsyncMock()
        composer = FeedComposer(store, identity)

        result = await composer.personalized("c2", followed=[])

        assert result.is_empty
        store.list_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_is_error_result(self, seeded, identity):
        store = AsyncMock()
        store.list_all.side_effect = TransientStoreError()
        result = await FeedComposer(store, identity).personalized("c1", followed=["p1"])
        assert result.is_error


class TestItems:

    @pytest.mark.asyncio
    async def test_get_item(self, seeded, feed):
        item = await feed.get_item("i1")
        assert item.provider.name == "Maya Styles"
        assert item.likes == 12

    @pytest.mark.asyncio
    @pytest.mark.parametrize("item_id", ["missing", "broken", "bad-likes"])
    async def test_unknown_or_unrenderable_item(self, seeded, feed, item_id):
        await seeded.create("explore", {"url": "https://img.example.com/b.jpg", "likes": "lots"}, doc_id="bad-likes")
        with pytest.raises(NotFoundError) as exc_info:
            await feed.get_item(item_id)
        assert exc_info.value.resource == "post"

    def test_mapping_defaults(self):
        item = ContentItem.from_snapshot(
            DocumentSnapshot(id="x1", data={"url": "https://img.example.com/x1.jpg"})
        )
        assert item.category == "General"
        assert item.provider.name == "Unknown Provider"
        assert item.provider.id == "x1"
        assert item.likes == 0
        assert item.provider.verified is False

    def test_provider_id_derived_from_name(self):
        item = ContentItem.from_snapshot(
            DocumentSnapshot(id="x1", data={"url": "u", "provider_name": "Glow  Studio"})
        )
        assert item.provider.id == "glow-studio"

    def test_category_counts(self):
        items = catalog_view(
            [
                ContentItem.from_snapshot(DocumentSnapshot(id="a", data={"url": "u", "category": "Hair"})),
                ContentItem.from_snapshot(DocumentSnapshot(id="b", data={"url": "u", "category": "Hair"})),
                ContentItem.from_snapshot(DocumentSnapshot(id="c", data={"url": "u"})),
            ]
        )
        counts = category_counts(items)
        assert counts["All"] == 3
        assert counts["Hair"] == 2
        assert counts["General"] == 1
        assert counts["Nails"] == 0


class TestFollowFeedScenario:

    @pytest.mark.asyncio
    async def test_follow_changes_personalized_but_not_catalog(self, seeded, follows, feed):
        catalog_before = _ids(await feed.catalog())
        assert _ids(await feed.personalized("c1")) == ["i1", "i3"]

        await follows.follow("c1", "p2")
        assert _ids(await feed.personalized("c1")) == ["i1", "i2", "i3"]

        await follows.unfollow("c1", "p1")
        await follows.unfollow("c1", "p2")
        result = await feed.personalized("c1")
        assert result.is_empty

        assert _ids(await feed.catalog()) == catalog_before
