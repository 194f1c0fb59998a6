"""
MarketSync Backend — Registrar
================================

What:  Creates provider services, provider posts and consumer bookings, and
       links each new id onto the owning user's profile.
How:   Validate → create document → set-union the id onto the user list.
       Validation failures happen before any store call.

Linked fields:
    services  → user.services
    explore   → user.my_posts   (post carries a snapshot of the provider)
    bookings  → user.bookings   (consumer side only)
"""

import logging
from typing import Optional

from marketsync.config import settings
from marketsync.exceptions import ValidationError
from marketsync.services.identity_service import IdentityStoreAdapter
from marketsync.services.store_base import SERVER_TIMESTAMP, PersistentStore

logger = logging.getLogger(__name__)

BOOKING_STATUS_UPCOMING = "upcoming"


def _required(value: Optional[str], field: str, message: str) -> str:
    if not value or not value.strip():
        raise ValidationError(message=message, field=field)
    return value.strip()


class Registrar:
    """Creation flows for services, posts and bookings."""

    def __init__(self, store: PersistentStore, identity: IdentityStoreAdapter):
        self.store = store
        self.identity = identity

    async def create_service(
        self,
        provider_id: str,
        title: str,
        price: float,
        duration_minutes: int,
    ) -> str:
        """
        Register a bookable service for a provider.

        Raises:
            ValidationError: blank title, price <= 0 or duration <= 0
            NotFoundError: provider has no profile
        """
        _required(provider_id, "provider_id", "A provider id is required")
        title = _required(title, "title", "Please enter a service title")
        if price is None or price <= 0:
            raise ValidationError(message="Please enter a valid price", field="price")
        if duration_minutes is None or duration_minutes <= 0:
            raise ValidationError(
                message="Please enter a valid time in minutes", field="duration_minutes"
            )

        await self.identity.get_user(provider_id)
        service_id = await self.store.create(
            settings.services_collection,
            {
                "title": title,
                "price": price,
                "time": duration_minutes,
                "provider_id": provider_id,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        await self.identity.link(provider_id, "services", service_id)
        logger.info("Service %s created for provider %s", service_id, provider_id)
        return service_id

    async def create_post(
        self,
        provider_id: str,
        image_url: str,
        description: str,
        category: str,
    ) -> str:
        """
        Publish a work photo to the catalog.

        The provider's name, avatar, profession and rating are copied onto
        the post at this point and are not refreshed afterwards.
        """
        _required(provider_id, "provider_id", "A provider id is required")
        image_url = _required(image_url, "image_url", "Please enter an image URL")
        description = _required(description, "description", "Please enter a description")
        category = _required(category, "category", "Please select a category")

        provider = await self.identity.get_user(provider_id)
        post_id = await self.store.create(
            settings.feed_collection,
            {
                "url": image_url,
                "description": description,
                "category": category,
                "provider_id": provider_id,
                "provider_name": provider.name or None,
                "profile_picture": provider.profile_picture,
                "profession": provider.profession,
                "rating": provider.rating,
                "verified": False,
                "likes": 0,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        await self.identity.link(provider_id, "my_posts", post_id)
        logger.info("Post %s created by provider %s (%s)", post_id, provider_id, category)
        return post_id

    async def create_booking(
        self,
        consumer_id: str,
        provider_id: str,
        service: str,
        date: str,
        time: str,
    ) -> str:
        _required(consumer_id, "consumer_id", "A consumer id is required")
        _required(provider_id, "provider_id", "A provider id is required")
        service = _required(service, "service", "Please choose a service")
        date = _required(date, "date", "Please choose a date")
        time = _required(time, "time", "Please choose a time")

        await self.identity.get_user(consumer_id)
        await self.identity.get_user(provider_id)
        booking_id = await self.store.create(
            settings.bookings_collection,
            {
                "consumer_id": consumer_id,
                "provider_id": provider_id,
                "service": service,
                "date": date,
                "time": time,
                "status": BOOKING_STATUS_UPCOMING,
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        await self.identity.link(consumer_id, "bookings", booking_id)
        logger.info("Booking %s: %s with %s on %s %s", booking_id, consumer_id, provider_id, date, time)
        return booking_id
