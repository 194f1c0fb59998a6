"""
MarketSync Backend — Conversation Routes
==========================================

What:  First contact, message appends, conversation reads, the inbox list
       and the live message stream.

Stream protocol (WS /api/conversations/{id}/stream?viewer_id=...):
    Each viewer holds at most one stream per conversation; both participants
    can watch at the same time. Reconnecting with the same viewer_id closes
    that viewer's older stream.

    server → client  {"type": "snapshot", "data": {"conversation_id", "messages"}}
                     one frame on connect, then one per committed change
    server → client  {"type": "error", "data": {"error", "message"}}
                     then the socket is closed
    client → server  anything; ignored. Closing the socket ends the stream.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, status
from starlette.websockets import WebSocketDisconnect, WebSocketState

from marketsync.dependencies import get_conversations
from marketsync.exceptions import MarketSyncError, NotFoundError
from marketsync.schemas.api import (
    ConversationCreatedResponse,
    ConversationCreateRequest,
    ErrorResponse,
    MessageCreateRequest,
    StreamEnvelope,
)
from marketsync.schemas.domain import Conversation, ConversationSummary, Message
from marketsync.services.conversation_service import ConversationManager, ConversationSubscription

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Conversations"])

# Application-defined close codes (4000-4999)
WS_CLOSE_NOT_FOUND = 4404
WS_CLOSE_STORE_ERROR = 4503


@router.post(
    "/api/conversations",
    response_model=ConversationCreatedResponse,
    responses={
        400: {"description": "Blank or identical participant ids", "model": ErrorResponse},
        404: {"description": "Unknown participant", "model": ErrorResponse},
    },
    summary="Get or create the conversation for a consumer/provider pair",
)
async def create_or_get_conversation(
    body: ConversationCreateRequest,
    conversations: ConversationManager = Depends(get_conversations),
) -> ConversationCreatedResponse:
    conversation_id = await conversations.create_or_get(body.consumer_id, body.provider_id)
    return ConversationCreatedResponse(conversation_id=conversation_id)


@router.get(
    "/api/conversations/{conversation_id}",
    response_model=Conversation,
    responses={404: {"description": "Unknown conversation", "model": ErrorResponse}},
    summary="Conversation with its full message log",
)
async def get_conversation(
    conversation_id: str,
    conversations: ConversationManager = Depends(get_conversations),
) -> Conversation:
    return await conversations.get(conversation_id)


@router.post(
    "/api/conversations/{conversation_id}/messages",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Blank content or unknown role", "model": ErrorResponse},
        403: {"description": "Sender does not hold that role here", "model": ErrorResponse},
        404: {"description": "Unknown conversation", "model": ErrorResponse},
    },
    summary="Append a message",
)
async def append_message(
    conversation_id: str,
    body: MessageCreateRequest,
    conversations: ConversationManager = Depends(get_conversations),
) -> Message:
    return await conversations.append_message(
        conversation_id, body.content, body.sender_role, sender_id=body.sender_id
    )


@router.get(
    "/api/users/{user_id}/conversations",
    response_model=List[ConversationSummary],
    responses={404: {"description": "Unknown user", "model": ErrorResponse}},
    summary="Inbox: the user's conversations with previews",
)
async def list_conversations(
    user_id: str,
    conversations: ConversationManager = Depends(get_conversations),
) -> List[ConversationSummary]:
    return await conversations.list_for_user(user_id)


# ── Live stream ───────────────────────────────────────────────────────────


async def _send(websocket: WebSocket, envelope: StreamEnvelope) -> None:
    await websocket.send_json(envelope.model_dump(mode="json"))


async def _watch_disconnect(websocket: WebSocket, subscription: ConversationSubscription) -> None:
    """Ends the subscription when the client goes away; client frames are ignored."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
    finally:
        subscription.close()


@router.websocket("/api/conversations/{conversation_id}/stream")
async def stream_conversation(
    websocket: WebSocket,
    conversation_id: str,
    viewer_id: Optional[str] = Query(default=None, description="Replaces this viewer's earlier stream"),
    conversations: ConversationManager = Depends(get_conversations),
) -> None:
    await websocket.accept()
    try:
        subscription = await conversations.subscribe(conversation_id, subscriber_id=viewer_id)
    except NotFoundError as e:
        await _send(websocket, StreamEnvelope.error("not_found", e.message))
        await websocket.close(code=WS_CLOSE_NOT_FOUND)
        return

    logger.info("Stream opened for conversation %s (viewer=%s)", conversation_id, viewer_id)
    watcher = asyncio.create_task(_watch_disconnect(websocket, subscription))
    failure: Optional[MarketSyncError] = None
    client_gone = False
    try:
        async for messages in subscription:
            await _send(websocket, StreamEnvelope.snapshot(conversation_id, messages))
    except WebSocketDisconnect:
        client_gone = True
    except MarketSyncError as e:
        failure = e
    finally:
        # No awaits here: the server may cancel this task at any point
        client_gone = client_gone or watcher.done()
        subscription.close()
        watcher.cancel()

    if failure is not None:
        logger.error("Stream for %s failed: %s", conversation_id, failure.message)
        if not client_gone:
            await _send(websocket, StreamEnvelope.error("store_unavailable", failure.message))
            await websocket.close(code=WS_CLOSE_STORE_ERROR)
    elif not client_gone and websocket.application_state == WebSocketState.CONNECTED:
        await websocket.close()

    logger.info("Stream closed for conversation %s", conversation_id)
