"""
MarketSync Backend — Conversation Manager
===========================================

What:  Owns the one-per-pair message log between a consumer and a provider:
       first contact, appends, the live message stream and the inbox list.
How:   Conversations are documents in the `messages` collection. Their id is
       the sorted pair key, and the store's create-with-explicit-id acts as
       the uniqueness constraint for concurrent first contact.
Who:   Called by the conversation routes and the WebSocket stream.

Lifecycle per pair:
    none ──create_or_get──▶ idle ──append_message──▶ idle
                             │
                             └──subscribe──▶ subscribed ──close──▶ idle

Alignment:
    New messages carry the author's id in `sender_id`. Older messages only
    carry `user_type`; for those the viewer is compared with the participant
    holding that role.
"""

import inspect
import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from marketsync.config import settings
from marketsync.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from marketsync.schemas.domain import (
    SENDER_ROLES,
    Conversation,
    ConversationSummary,
    Message,
)
from marketsync.services.identity_service import IdentityStoreAdapter
from marketsync.services.store_base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    PersistentStore,
    Subscription,
)

logger = logging.getLogger(__name__)

MESSAGES_FIELD = "messages"
CHAT_FIELD = "chat"
NO_MESSAGES_PREVIEW = "No messages yet"

MessagesCallback = Callable[[List[Message]], Union[None, Awaitable[None]]]


def pair_key(user_a: str, user_b: str) -> str:
    """Deterministic id for the unordered pair {user_a, user_b}."""
    low, high = sorted([user_a, user_b])
    return f"{low}__{high}"


def _require(value: Optional[str], field: str, label: str) -> str:
    if not value or not value.strip():
        raise ValidationError(message=f"A {label} is required", field=field)
    return value


class ConversationSubscription:
    """
    Live view of one conversation's message list.

    Each delivery is the complete, ordered list of messages, starting with the
    state at subscribe time. Either pass `on_update` to the manager's
    subscribe() or iterate:

        async with await manager.subscribe(conversation_id) as stream:
            async for messages in stream:
                ...

    close() is idempotent; once it returns no further update is delivered.
    """

    def __init__(
        self,
        conversation_id: str,
        channel: Subscription,
        on_update: Optional[MessagesCallback] = None,
        release: Optional[Callable[["ConversationSubscription"], None]] = None,
        subscriber_id: Optional[str] = None,
    ):
        self.conversation_id = conversation_id
        self.subscriber_id = subscriber_id or uuid.uuid4().hex
        self._channel = channel
        self._on_update = on_update
        self._release = release
        self._closed = False
        if on_update is not None:
            channel.attach(self._deliver)

    @property
    def closed(self) -> bool:
        return self._closed or self._channel.closed

    @staticmethod
    def _messages(snapshot: DocumentSnapshot) -> List[Message]:
        return Conversation.from_snapshot(snapshot).chat

    async def _deliver(self, snapshot: DocumentSnapshot) -> None:
        result = self._on_update(self._messages(snapshot))
        if inspect.isawaitable(result):
            await result

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel.close()
        if self._release is not None:
            self._release(self)
        logger.debug("Conversation stream closed: %s", self.conversation_id)

    def __aiter__(self) -> "ConversationSubscription":
        return self

    async def __anext__(self) -> List[Message]:
        try:
            snapshot = await self._channel.__anext__()
        except Exception:
            # Ended (StopAsyncIteration) or failed
            self.close()
            raise
        return self._messages(snapshot)

    async def __aenter__(self) -> "ConversationSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ConversationManager:
    """
    Conversation operations over the store and the identity adapter.

    Active streams are keyed by (conversation, subscriber). A subscriber
    holds at most one stream per conversation: subscribing again with the
    same subscriber_id closes its earlier stream. Other subscribers' streams
    on that conversation are left alone. Without a subscriber_id every
    stream is independent.
    """

    def __init__(
        self,
        store: PersistentStore,
        identity: IdentityStoreAdapter,
        collection: Optional[str] = None,
    ):
        self.store = store
        self.identity = identity
        self.collection = collection or settings.conversations_collection
        self._active: Dict[Tuple[str, str], ConversationSubscription] = {}

    # ── Lookup ────────────────────────────────────────────────────────────

    async def get(self, conversation_id: str) -> Conversation:
        try:
            snapshot = await self.store.get_by_id(self.collection, conversation_id)
        except NotFoundError:
            raise NotFoundError(resource="conversation", resource_id=conversation_id)
        return Conversation.from_snapshot(snapshot)

    async def _find_existing(self, consumer_id: str, provider_id: str) -> Optional[str]:
        for snapshot in await self.store.list_all(self.collection):
            participants = {snapshot.data.get("consumer_id"), snapshot.data.get("provider_id")}
            if participants == {consumer_id, provider_id}:
                return snapshot.id
        return None

    # ── Writes ────────────────────────────────────────────────────────────

    async def create_or_get(self, consumer_id: str, provider_id: str) -> str:
        """
        Return the conversation for the pair, creating it on first contact.

        The id is registered on both participants' `messages` lists on every
        call, so a link lost to an earlier partial failure is repaired.

        Raises:
            ValidationError: blank id, or both ids equal
            NotFoundError: either participant has no profile
            TransientStoreError: store unavailable
        """
        _require(consumer_id, "consumer_id", "consumer id")
        _require(provider_id, "provider_id", "provider id")
        if consumer_id == provider_id:
            raise ValidationError(
                message="A conversation needs two different participants",
                field="provider_id",
            )

        await self.identity.get_user(consumer_id)
        await self.identity.get_user(provider_id)

        conversation_id = await self._find_existing(consumer_id, provider_id)
        if conversation_id is None:
            key = pair_key(consumer_id, provider_id)
            try:
                conversation_id = await self.store.create(
                    self.collection,
                    {
                        "consumer_id": consumer_id,
                        "provider_id": provider_id,
                        CHAT_FIELD: [],
                        "created_at": SERVER_TIMESTAMP,
                        "updated_at": SERVER_TIMESTAMP,
                    },
                    doc_id=key,
                )
                logger.info(
                    "Conversation created: %s (consumer=%s, provider=%s)",
                    conversation_id,
                    consumer_id,
                    provider_id,
                )
            except ConflictError:
                # Another caller created it between our scan and create
                logger.info("Conversation %s already created concurrently; reusing", key)
                conversation_id = key

        await self.identity.link(consumer_id, MESSAGES_FIELD, conversation_id)
        await self.identity.link(provider_id, MESSAGES_FIELD, conversation_id)
        return conversation_id

    async def append_message(
        self,
        conversation_id: str,
        content: str,
        sender_role: str,
        sender_id: Optional[str] = None,
    ) -> Message:
        """
        Append one message to the conversation log.

        Args:
            conversation_id: Target conversation
            content:         Message text; surrounding whitespace is trimmed
            sender_role:     "consumer" or "provider"
            sender_id:       Author id. When omitted, the participant holding
                             `sender_role` is recorded as the author.

        Returns:
            The message as stored, with its store-assigned timestamp.

        Raises:
            ValidationError: empty content or unknown role (no store call made)
            NotFoundError: unknown conversation
            PermissionDeniedError: sender_id does not hold sender_role here
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError(message="Message content cannot be empty", field="content")
        if sender_role not in SENDER_ROLES:
            raise ValidationError(
                message=f"Unknown sender role '{sender_role}'",
                field="sender_role",
                context={"allowed": list(SENDER_ROLES)},
            )

        conversation = await self.get(conversation_id)
        participant = conversation.participant_for(sender_role)
        if sender_id is not None and sender_id != participant:
            logger.warning(
                "Rejected message on %s: %s is not the %s",
                conversation_id,
                sender_id,
                sender_role,
            )
            raise PermissionDeniedError(
                message="You are not a participant in this conversation",
                context={"conversation_id": conversation_id, "sender_role": sender_role},
            )

        author = sender_id or participant
        message_id = uuid.uuid4().hex[:12]
        try:
            await self.store.append_to_array_field(
                self.collection,
                conversation_id,
                CHAT_FIELD,
                {
                    "id": message_id,
                    "content": text,
                    "user_type": sender_role,
                    "sender_id": author,
                    "timestamp": SERVER_TIMESTAMP,
                },
                unique=False,
                merge={"updated_at": SERVER_TIMESTAMP},
            )
        except NotFoundError:
            raise NotFoundError(resource="conversation", resource_id=conversation_id)
        logger.info("Message appended to %s by %s (%s)", conversation_id, author, sender_role)

        stored = await self.get(conversation_id)
        for message in reversed(stored.chat):
            if message.id == message_id:
                return message
        return Message(id=message_id, content=text, user_type=sender_role, sender_id=author)

    # ── Inbox ─────────────────────────────────────────────────────────────

    async def list_for_user(self, user_id: str) -> List[ConversationSummary]:
        """
        The user's conversations in the order they were registered.

        Ids whose conversation no longer resolves are skipped. The other
        participant is attached when their profile exists.
        """
        user = await self.identity.get_user(user_id)
        summaries: List[ConversationSummary] = []
        for conversation_id in user.messages:
            try:
                conversation = await self.get(conversation_id)
            except NotFoundError:
                logger.warning(
                    "User %s lists missing conversation %s; skipping",
                    user_id,
                    conversation_id,
                )
                continue

            other_id = (
                conversation.provider_id
                if conversation.consumer_id == user_id
                else conversation.consumer_id
            )
            try:
                other_user = await self.identity.get_user(other_id)
            except NotFoundError:
                other_user = None

            summaries.append(
                ConversationSummary(
                    id=conversation.id,
                    consumer_id=conversation.consumer_id,
                    provider_id=conversation.provider_id,
                    other_user=other_user,
                    last_message_preview=(
                        conversation.chat[-1].content if conversation.chat else NO_MESSAGES_PREVIEW
                    ),
                    message_count=len(conversation.chat),
                    updated_at=conversation.updated_at,
                )
            )
        return summaries

    # ── Live stream ───────────────────────────────────────────────────────

    async def subscribe(
        self,
        conversation_id: str,
        on_update: Optional[MessagesCallback] = None,
        subscriber_id: Optional[str] = None,
    ) -> ConversationSubscription:
        """
        Attach to the conversation's change feed.

        The first delivery is the current message list; every committed
        change after that delivers the full list again.

        Args:
            conversation_id: Conversation to watch
            on_update:       Optional callback receiving each message list
            subscriber_id:   Who is watching (a viewer or connection id).
                             Replaces only that subscriber's earlier stream.

        Raises:
            NotFoundError: unknown conversation
        """
        if subscriber_id is not None:
            previous = self._active.pop((conversation_id, subscriber_id), None)
            if previous is not None:
                logger.debug("Replacing stream of %s on %s", subscriber_id, conversation_id)
                previous.close()

        try:
            channel = await self.store.subscribe(self.collection, conversation_id)
        except NotFoundError:
            raise NotFoundError(resource="conversation", resource_id=conversation_id)

        subscription = ConversationSubscription(
            conversation_id,
            channel,
            on_update=on_update,
            release=self._release,
            subscriber_id=subscriber_id,
        )
        self._active[(conversation_id, subscription.subscriber_id)] = subscription
        return subscription

    def _release(self, subscription: ConversationSubscription) -> None:
        key = (subscription.conversation_id, subscription.subscriber_id)
        if self._active.get(key) is subscription:
            del self._active[key]

    def active_count(self) -> int:
        return len(self._active)

    def close_all(self) -> None:
        for subscription in list(self._active.values()):
            subscription.close()
        self._active.clear()

    # ── Alignment ─────────────────────────────────────────────────────────

    @staticmethod
    def is_own_message(message: Message, conversation: Conversation, viewer_id: str) -> bool:
        """Whether `viewer_id` authored `message` (drives bubble alignment)."""
        if message.sender_id:
            return message.sender_id == viewer_id
        return conversation.participant_for(message.user_type) == viewer_id
