"""
MarketSync Backend — Domain Records
=====================================

What:  Typed views over store documents: users, content items, conversations,
       messages, and the feed result envelope.
Why:   Managers work with validated records; stores only see plain dicts.
How:   Each record knows how to build itself from a DocumentSnapshot.
       Unknown document fields are ignored so older documents still load.

Stored field names follow the documents the UI already writes:
    users     → role, name, email, followed[], messages[], services[], ...
    explore   → url, category, provider_id, provider_name, profile_picture, ...
    messages  → consumer_id, provider_id, chat[{content, user_type, sender_id, timestamp}]
"""

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from marketsync.services.store_base import DocumentSnapshot

logger = logging.getLogger(__name__)

CATEGORIES = ["All", "Nails", "Hair", "Makeup", "Barber", "Photography"]
ALL_CATEGORIES = "All"


class Role(str, Enum):
    CONSUMER = "consumer"
    PROVIDER = "provider"
    GUEST = "guest"


SenderRole = Literal["consumer", "provider"]
SENDER_ROLES = ("consumer", "provider")


# ══════════════════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════════════════


class UserRecord(BaseModel):
    """
    A user profile from the identity store.

    `followed` holds provider ids and `messages` holds conversation ids; both
    are maintained with set-union appends so they never contain duplicates.
    Guests carry empty relationship lists.
    """

    id: str
    role: Role = Role.CONSUMER
    name: str = ""
    email: str = ""
    profile_picture: Optional[str] = None
    profession: Optional[str] = None
    rating: Optional[float] = None
    is_onboarded: bool = False
    followed: List[str] = Field(default_factory=list)
    messages: List[str] = Field(default_factory=list)
    services: List[str] = Field(default_factory=list)
    my_posts: List[str] = Field(default_factory=list)
    bookings: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"extra": "ignore", "use_enum_values": False}

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "UserRecord":
        return cls(**{**snapshot.data, "id": snapshot.id})

    @property
    def is_guest(self) -> bool:
        return self.role == Role.GUEST


# ══════════════════════════════════════════════════════════════════════════
# Content items
# ══════════════════════════════════════════════════════════════════════════


class ProviderSnapshot(BaseModel):
    """Provider details copied onto an item at creation; never refreshed."""

    id: str
    name: str = "Unknown Provider"
    avatar: str = ""
    profession: Optional[str] = None
    verified: bool = False
    rating: Optional[float] = None
    location: Optional[str] = None


class ContentItem(BaseModel):
    """A provider's work photo as shown in the catalog and personalized feeds."""

    id: str
    image: str
    category: str = "General"
    provider: ProviderSnapshot
    likes: int = 0
    description: Optional[str] = None

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> Optional["ContentItem"]:
        """
        Map an `explore` document onto a ContentItem.

        Returns None for documents without an image url; they cannot be
        rendered and are skipped by the feeds.
        """
        data = snapshot.data
        if not data.get("url"):
            logger.warning("Feed document %s has no 'url' field; skipping", snapshot.id)
            return None

        name = data.get("provider_name")
        provider_id = data.get("provider_id")
        if not provider_id:
            provider_id = re.sub(r"\s+", "-", name.lower()) if name else snapshot.id

        return cls(
            id=snapshot.id,
            image=data["url"],
            category=data.get("category") or "General",
            provider=ProviderSnapshot(
                id=provider_id,
                name=name or "Unknown Provider",
                avatar=data.get("profile_picture") or "",
                profession=data.get("profession"),
                verified=bool(data.get("verified", False)),
                rating=data.get("rating"),
                location=data.get("location"),
            ),
            likes=data.get("likes") or 0,
            description=data.get("description"),
        )


class FeedResult(BaseModel):
    """
    Outcome of one feed fetch.

    `ready` with no items is a valid empty feed; `error` means the fetch
    itself failed. The two never collapse into one another.
    """

    status: Literal["ready", "error"]
    items: List[ContentItem] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def ready(cls, items: List[ContentItem]) -> "FeedResult":
        return cls(status="ready", items=items)

    @classmethod
    def failed(cls, message: str) -> "FeedResult":
        return cls(status="error", error=message)

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    @property
    def is_empty(self) -> bool:
        return self.status == "ready" and not self.items


# ══════════════════════════════════════════════════════════════════════════
# Conversations
# ══════════════════════════════════════════════════════════════════════════


class Message(BaseModel):
    """
    One entry in a conversation log.

    `user_type` is the author's side of the pair. `id` and `sender_id` are
    stored for every new message; older messages may lack both.
    """

    id: Optional[str] = None
    content: str
    user_type: SenderRole
    sender_id: Optional[str] = None
    timestamp: Optional[datetime] = None


class Conversation(BaseModel):
    """The unique append-only message log for one consumer/provider pair."""

    id: str
    consumer_id: str
    provider_id: str
    chat: List[Message] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Conversation":
        return cls(**{**snapshot.data, "id": snapshot.id})

    def participant_for(self, role: str) -> str:
        return self.consumer_id if role == Role.CONSUMER.value else self.provider_id


class ConversationSummary(BaseModel):
    """A conversation as listed in a user's inbox."""

    id: str
    consumer_id: str
    provider_id: str
    other_user: Optional[UserRecord] = None
    last_message_preview: str = "No messages yet"
    message_count: int = 0
    updated_at: Optional[datetime] = None


def category_counts(items: List[ContentItem]) -> Dict[str, int]:
    """Items per category for the filter chips; `All` is the total."""
    counts = {category: 0 for category in CATEGORIES}
    counts[ALL_CATEGORIES] = len(items)
    for item in items:
        if item.category != ALL_CATEGORIES:
            counts[item.category] = counts.get(item.category, 0) + 1
    return counts
