"""
MarketSync Backend — Identity Adapter Tests
=============================================

What we test:
    ✅ profiles round-trip through the users collection
    ✅ update_user merges fields and refuses id changes
    ✅ link/unlink are set operations; unknown users surface as NotFoundError("user")
"""

import pytest

from marketsync.exceptions import ConflictError, NotFoundError, ValidationError
from marketsync.schemas.domain import Role, UserRecord


class TestIdentityStoreAdapter:

    @pytest.mark.asyncio
    async def test_create_and_get_user(self, identity):
        created = await identity.create_user(
            UserRecord(id="p9", role=Role.PROVIDER, name="Ola Barber", profession="Barber")
        )

        assert created.id == "p9"
        assert created.role == Role.PROVIDER
        assert (await identity.get_user("p9")).profession == "Barber"

    @pytest.mark.asyncio
    async def test_create_same_id_twice_conflicts(self, seeded, identity):
        with pytest.raises(ConflictError):
            await identity.create_user(UserRecord(id="c1", role=Role.CONSUMER, name="Again"))

    @pytest.mark.asyncio
    async def test_update_user_merges_fields(self, seeded, identity):
        await identity.update_user("c1", {"name": "Casey B."})

        user = await identity.get_user("c1")
        assert user.name == "Casey B."
        assert user.email == "casey@example.com"
        assert user.followed == ["p1"]

    @pytest.mark.asyncio
    async def test_update_user_cannot_change_id(self, seeded, identity):
        with pytest.raises(ValidationError) as exc_info:
            await identity.update_user("c1", {"id": "c99"})
        assert exc_info.value.field == "id"

    @pytest.mark.asyncio
    async def test_link_and_unlink(self, seeded, identity):
        assert await identity.link("c2", "bookings", "b1") is True
        assert await identity.link("c2", "bookings", "b1") is False
        assert await identity.unlink("c2", "bookings", "b1") is True
        assert await identity.unlink("c2", "bookings", "b1") is False

    @pytest.mark.asyncio
    async def test_unknown_user(self, seeded, identity):
        for call in (
            identity.get_user("ghost"),
            identity.update_user("ghost", {"name": "x"}),
            identity.link("ghost", "followed", "p1"),
        ):
            with pytest.raises(NotFoundError) as exc_info:
                await call
            assert exc_info.value.resource == "user"
