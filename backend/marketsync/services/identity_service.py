"""
MarketSync Backend — Identity Store Adapter
=============================================

What:  Typed access to user profile documents.
Why:   Account creation and credential checks live outside this layer; the
       managers only need to read a profile, merge fields into it, and link
       ids onto its relationship lists.
Who:   Used by every manager above the store.
"""

import logging
from typing import Any, Dict, Optional

from marketsync.config import settings
from marketsync.exceptions import NotFoundError, ValidationError
from marketsync.schemas.domain import UserRecord
from marketsync.services.store_base import SERVER_TIMESTAMP, PersistentStore

logger = logging.getLogger(__name__)


class IdentityStoreAdapter:
    """Wraps the users collection of a PersistentStore."""

    def __init__(self, store: PersistentStore, collection: Optional[str] = None):
        self.store = store
        self.collection = collection or settings.users_collection

    async def get_user(self, user_id: str) -> UserRecord:
        """
        Resolve a user id to its profile.

        Raises:
            NotFoundError: No profile document exists for the id.
        """
        try:
            snapshot = await self.store.get_by_id(self.collection, user_id)
        except NotFoundError:
            raise NotFoundError(resource="user", resource_id=user_id)
        return UserRecord.from_snapshot(snapshot)

    async def create_user(self, record: UserRecord) -> UserRecord:
        """
        Write the profile document created at signup.

        The id comes from the external account system, so it is explicit;
        creating the same id twice raises ConflictError from the store.
        """
        data = record.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
        data["created_at"] = SERVER_TIMESTAMP
        data["updated_at"] = SERVER_TIMESTAMP
        await self.store.create(self.collection, data, doc_id=record.id)
        logger.info("User profile created: %s (%s)", record.id, record.role.value)
        return await self.get_user(record.id)

    async def update_user(self, user_id: str, fields: Dict[str, Any]) -> None:
        """Merge `fields` into the profile and stamp updated_at."""
        if "id" in fields:
            raise ValidationError(message="A user's id cannot be changed", field="id")
        try:
            await self.store.update(
                self.collection, user_id, {**fields, "updated_at": SERVER_TIMESTAMP}
            )
        except NotFoundError:
            raise NotFoundError(resource="user", resource_id=user_id)

    async def link(self, user_id: str, field: str, value: str) -> bool:
        """Set-union `value` into one of the user's id lists."""
        try:
            return await self.store.append_to_array_field(
                self.collection, user_id, field, value, unique=True
            )
        except NotFoundError:
            raise NotFoundError(resource="user", resource_id=user_id)

    async def unlink(self, user_id: str, field: str, value: str) -> bool:
        try:
            return await self.store.remove_from_array_field(
                self.collection, user_id, field, value
            )
        except NotFoundError:
            raise NotFoundError(resource="user", resource_id=user_id)
