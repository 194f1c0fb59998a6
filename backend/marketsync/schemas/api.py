"""
MarketSync Backend — API Request/Response Schemas
===================================================

What:  Pydantic models defining the HTTP and WebSocket contract.
Why:   Request bodies are validated by FastAPI before a manager sees them,
       and the OpenAPI docs are generated from these models.

Domain records (UserRecord, ContentItem, Conversation, ...) live in
schemas/domain.py and are returned directly where their shape is already
the API shape. The models here cover inputs, envelopes and status payloads.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from marketsync.schemas.domain import ContentItem, Message, SenderRole


# ══════════════════════════════════════════════════════════════════════════
# Follows
# ══════════════════════════════════════════════════════════════════════════


class FollowStateResponse(BaseModel):
    """Result of a follow or unfollow call."""

    consumer_id: str
    provider_id: str
    following: bool = Field(description="Whether the edge exists after the call")
    changed: bool = Field(description="False when the call was a no-op (already in that state)")


class FollowedListResponse(BaseModel):
    consumer_id: str
    followed: List[str] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════
# Feeds
# ══════════════════════════════════════════════════════════════════════════


class FeedResponse(BaseModel):
    """
    A successfully fetched feed.

    `items` may be empty; an empty feed is a valid answer. A failed fetch is
    never reported through this model (it becomes a 503 ErrorResponse).
    """

    status: Literal["ready"] = "ready"
    items: List[ContentItem] = Field(default_factory=list)
    total: int = 0
    category_counts: Dict[str, int] = Field(default_factory=dict)


# ══════════════════════════════════════════════════════════════════════════
# Conversations
# ══════════════════════════════════════════════════════════════════════════


class ConversationCreateRequest(BaseModel):
    consumer_id: str = Field(min_length=1, description="Consumer starting the conversation")
    provider_id: str = Field(min_length=1, description="Provider being contacted")


class ConversationCreatedResponse(BaseModel):
    conversation_id: str


class MessageCreateRequest(BaseModel):
    """
    Body of POST /api/conversations/{id}/messages.

    Blank content passes schema validation; the manager rejects it with a
    ValidationError (400), the same rule in-process callers hit.
    """

    content: str = Field(description="Message text (trimmed; must not be blank)")
    sender_role: SenderRole
    sender_id: Optional[str] = Field(default=None, description="Author id, checked against the role")


# ══════════════════════════════════════════════════════════════════════════
# Registrar
# ══════════════════════════════════════════════════════════════════════════


class ServiceCreateRequest(BaseModel):
    provider_id: str
    title: str
    price: float
    duration_minutes: int


class PostCreateRequest(BaseModel):
    provider_id: str
    image_url: str
    description: str
    category: str


class BookingCreateRequest(BaseModel):
    consumer_id: str
    provider_id: str
    service: str
    date: str = Field(description="Calendar date chosen in the booking dialog")
    time: str = Field(description="Time slot label, e.g. '10:00 AM'")


class CreatedResponse(BaseModel):
    id: str


# ══════════════════════════════════════════════════════════════════════════
# Conversation stream (WebSocket)
# ══════════════════════════════════════════════════════════════════════════


class StreamEnvelope(BaseModel):
    """
    Server → client frame on /api/conversations/{id}/stream.

    type:
        snapshot  data = {"conversation_id", "messages": [...]} (full list)
        error     data = {"error", "message"}
    """

    type: Literal["snapshot", "error"]
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def snapshot(cls, conversation_id: str, messages: List[Message]) -> "StreamEnvelope":
        return cls(
            type="snapshot",
            data={
                "conversation_id": conversation_id,
                "messages": [m.model_dump(mode="json") for m in messages],
            },
        )

    @classmethod
    def error(cls, code: str, message: str) -> "StreamEnvelope":
        return cls(type="error", data={"error": code, "message": message})


# ══════════════════════════════════════════════════════════════════════════
# Errors & health
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Body of every error response.

    Example:
        {
            "error": "validation_error",
            "message": "Message content cannot be empty",
            "details": {"field": "content"},
            "request_id": "3f9c1a7b20de"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or unhealthy")
    version: str
    store: str = Field(description="Active store backend: memory or sql")
    store_status: str = Field(description="reachable or unreachable")
    uptime_seconds: float
    checked_at: Optional[datetime] = None
