"""
MarketSync Backend — Follow Graph Manager
===========================================

What:  Owns the consumer→provider follow relation stored on the follower's
       profile (`followed` list).
How:   follow/unfollow are idempotent set operations on the store. toggle()
       wraps them with the optimistic mirror flow the UI uses.
Who:   Called by the follow routes and by the Feed Composer (followed set).

Contract:
    - Repeating follow or unfollow never raises and never duplicates an edge
    - Blank ids fail with ValidationError before any store call
    - A consumer id with no profile fails with NotFoundError
    - The provider is not notified and no reciprocal edge is written
    - Concurrent toggles on the same pair are not serialized here; the
      mirror's is_pending() lets the UI disable the control meanwhile
"""

import logging
from typing import List

from marketsync.exceptions import ValidationError
from marketsync.services.identity_service import IdentityStoreAdapter
from marketsync.services.mirror import MirrorChange, OptimisticMirror

logger = logging.getLogger(__name__)

FOLLOWED_FIELD = "followed"


def _require_ids(consumer_id: str, provider_id: str) -> None:
    if not consumer_id or not consumer_id.strip():
        raise ValidationError(message="A follower id is required", field="consumer_id")
    if not provider_id or not provider_id.strip():
        raise ValidationError(message="A provider to follow is required", field="provider_id")


class FollowGraphManager:
    """Follow/unfollow with idempotent semantics plus an optimistic toggle."""

    def __init__(self, identity: IdentityStoreAdapter):
        self.identity = identity

    async def follow(self, consumer_id: str, provider_id: str) -> bool:
        """
        Add provider_id to the consumer's followed set.

        Returns:
            True if an edge was written, False if it already existed.

        Raises:
            ValidationError: blank consumer or provider id
            NotFoundError: consumer has no profile
            TransientStoreError: store unavailable
        """
        _require_ids(consumer_id, provider_id)
        user = await self.identity.get_user(consumer_id)
        if provider_id in user.followed:
            logger.debug("%s already follows %s", consumer_id, provider_id)
            return False

        # Set-union: a concurrent duplicate follow still leaves one edge
        added = await self.identity.link(consumer_id, FOLLOWED_FIELD, provider_id)
        if added:
            logger.info("%s followed %s", consumer_id, provider_id)
        return added

    async def unfollow(self, consumer_id: str, provider_id: str) -> bool:
        """Remove provider_id from the followed set; no error if absent."""
        _require_ids(consumer_id, provider_id)
        user = await self.identity.get_user(consumer_id)
        if provider_id not in user.followed:
            return False

        removed = await self.identity.unlink(consumer_id, FOLLOWED_FIELD, provider_id)
        if removed:
            logger.info("%s unfollowed %s", consumer_id, provider_id)
        return removed

    async def followed(self, consumer_id: str) -> List[str]:
        """Authoritative read of the followed provider ids."""
        user = await self.identity.get_user(consumer_id)
        return list(user.followed)

    async def is_following(self, consumer_id: str, provider_id: str) -> bool:
        return provider_id in await self.followed(consumer_id)

    async def toggle(
        self,
        consumer_id: str,
        provider_id: str,
        mirror: OptimisticMirror,
    ) -> bool:
        """
        Flip follow status optimistically.

        Flow:
            1. Validate (no local change on ValidationError)
            2. Flip the mirror entry → PENDING
            3. Issue follow or unfollow
            4. reconcile(ok=True) on success; reconcile(ok=False) and re-raise
               on failure, so the toggle visibly reverts

        Returns:
            The new following state.
        """
        _require_ids(consumer_id, provider_id)
        target = provider_id not in mirror
        change: MirrorChange = mirror.apply(provider_id, target)

        try:
            if target:
                await self.follow(consumer_id, provider_id)
            else:
                await self.unfollow(consumer_id, provider_id)
        except Exception as e:
            mirror.reconcile(change, ok=False)
            logger.warning(
                "Follow toggle %s→%s failed, reverted: %s",
                consumer_id,
                provider_id,
                str(e),
            )
            raise

        mirror.reconcile(change, ok=True)
        return target

    async def refresh(self, consumer_id: str, mirror: OptimisticMirror) -> List[str]:
        """Re-read the followed set and reset the mirror to it."""
        remote = await self.followed(consumer_id)
        mirror.reset(remote)
        return mirror.values()
