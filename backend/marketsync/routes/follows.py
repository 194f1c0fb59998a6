"""
MarketSync Backend — Follow Routes
====================================

What:  Read and change a consumer's followed providers.
How:   PUT/DELETE are idempotent: repeating them answers 200 with
       changed=false instead of an error.
"""

import logging

from fastapi import APIRouter, Depends

from marketsync.dependencies import get_follows
from marketsync.schemas.api import ErrorResponse, FollowedListResponse, FollowStateResponse
from marketsync.services.follow_service import FollowGraphManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Follows"])

_ERRORS = {
    400: {"description": "Blank id", "model": ErrorResponse},
    404: {"description": "Unknown consumer", "model": ErrorResponse},
    503: {"description": "Store unavailable", "model": ErrorResponse},
}


@router.get(
    "/{user_id}/follows",
    response_model=FollowedListResponse,
    responses=_ERRORS,
    summary="List followed providers",
)
async def list_followed(
    user_id: str,
    follows: FollowGraphManager = Depends(get_follows),
) -> FollowedListResponse:
    return FollowedListResponse(consumer_id=user_id, followed=await follows.followed(user_id))


@router.put(
    "/{user_id}/follows/{provider_id}",
    response_model=FollowStateResponse,
    responses=_ERRORS,
    summary="Follow a provider",
)
async def follow_provider(
    user_id: str,
    provider_id: str,
    follows: FollowGraphManager = Depends(get_follows),
) -> FollowStateResponse:
    changed = await follows.follow(user_id, provider_id)
    return FollowStateResponse(
        consumer_id=user_id, provider_id=provider_id, following=True, changed=changed
    )


@router.delete(
    "/{user_id}/follows/{provider_id}",
    response_model=FollowStateResponse,
    responses=_ERRORS,
    summary="Unfollow a provider",
)
async def unfollow_provider(
    user_id: str,
    provider_id: str,
    follows: FollowGraphManager = Depends(get_follows),
) -> FollowStateResponse:
    changed = await follows.unfollow(user_id, provider_id)
    return FollowStateResponse(
        consumer_id=user_id, provider_id=provider_id, following=False, changed=changed
    )
