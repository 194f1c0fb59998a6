"""
MarketSync Backend — Registrar Tests
======================================

What we test:
    ✅ services, posts and bookings are created and linked onto the owner
    ✅ posts carry a snapshot of the provider and appear in the catalog
    ✅ invalid input fails before any store call
"""

from unittest.mock import AsyncMock

import pytest

from marketsync.exceptions import NotFoundError, ValidationError
from marketsync.services.registrar_service import BOOKING_STATUS_UPCOMING, Registrar


class TestCreateService:

    @pytest.mark.asyncio
    async def test_service_is_created_and_linked(self, seeded, registrar, identity):
        service_id = await registrar.create_service("p1", "  Silk Press ", 65.0, 90)

        stored = await seeded.get_by_id("services", service_id)
        assert stored.data["title"] == "Silk Press"
        assert stored.data["price"] == 65.0
        assert stored.data["time"] == 90
        assert (await identity.get_user("p1")).services == [service_id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "title, price, duration, field",
        [
            ("", 10.0, 30, "title"),
            ("Cut", 0, 30, "price"),
            ("Cut", -5.0, 30, "price"),
            ("Cut", 10.0, 0, "duration_minutes"),
        ],
    )
    async def test_invalid_service(self, title, price, duration, field):
        store = AsyncMock()
        registrar = Registrar(store, AsyncMock())

        with pytest.raises(ValidationError) as exc_info:
            await registrar.create_service("p1", title, price, duration)

        assert exc_info.value.field == field
        store.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_provider(self, seeded, registrar):
        with pytest.raises(NotFoundError):
            await registrar.create_service("ghost", "Cut", 10.0, 30)


class TestCreatePost:

    @pytest.mark.asyncio
    async def test_post_snapshots_provider_and_reaches_catalog(self, seeded, registrar, identity, feed):
        post_id = await registrar.create_post(
            "p1", "https://img.example.com/new.jpg", "Fresh braids", "Hair"
        )

        item = await feed.get_item(post_id)
        assert item.provider.id == "p1"
        assert item.provider.name == "Maya Styles"
        assert item.provider.avatar == "https://img.example.com/maya.jpg"
        assert item.provider.rating == 4.8
        assert item.likes == 0
        assert (await identity.get_user("p1")).my_posts == [post_id]
        assert post_id in [i.id for i in (await feed.catalog(category="Hair")).items]

    @pytest.mark.asyncio
    async def test_post_appears_in_followers_feed(self, seeded, registrar, feed):
        post_id = await registrar.create_post("p1", "https://img.example.com/n.jpg", "Glam", "Makeup")
        assert post_id in [i.id for i in (await feed.personalized("c1")).items]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("image_url, description, category", [("", "d", "Hair"), ("u", " ", "Hair"), ("u", "d", "")])
    async def test_missing_fields(self, seeded, registrar, image_url, description, category):
        with pytest.raises(ValidationError):
            await registrar.create_post("p1", image_url, description, category)


class TestCreateBooking:

    @pytest.mark.asyncio
    async def test_booking_is_upcoming_and_linked_to_consumer(self, seeded, registrar, identity):
        booking_id = await registrar.create_booking("c1", "p1", "Basic Cut & Style", "2026-11-02", "10:00 AM")

        stored = await seeded.get_by_id("bookings", booking_id)
        assert stored.data["status"] == BOOKING_STATUS_UPCOMING
        assert stored.data["provider_id"] == "p1"
        assert (await identity.get_user("c1")).bookings == [booking_id]
        assert (await identity.get_user("p1")).bookings == []

    @pytest.mark.asyncio
    async def test_booking_requires_time(self, seeded, registrar):
        with pytest.raises(ValidationError) as exc_info:
            await registrar.create_booking("c1", "p1", "Consultation", "2026-11-02", "")
        assert exc_info.value.field == "time"
