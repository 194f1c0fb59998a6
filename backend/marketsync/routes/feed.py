"""
MarketSync Backend — Feed Routes
==================================

What:  The catalog (Explore) and personalized (For You) feeds, plus single
       item lookup.

Empty vs error:
    A feed that loaded but has no items answers 200 with `items: []`.
    A feed whose fetch failed answers 503 with an ErrorResponse, so the
    client can offer a retry instead of showing an empty state.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from marketsync.dependencies import get_feed
from marketsync.middleware.request_id import request_id_var
from marketsync.schemas.api import ErrorResponse, FeedResponse
from marketsync.schemas.domain import ALL_CATEGORIES, ContentItem, FeedResult, category_counts
from marketsync.services.feed_service import FeedComposer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/feed", tags=["Feed"])


def _respond(result: FeedResult):
    if result.is_error:
        return JSONResponse(
            status_code=503,
            content=ErrorResponse(
                error="feed_unavailable",
                message=result.error or "Feed unavailable",
                request_id=request_id_var.get(""),
            ).model_dump(),
        )
    return FeedResponse(
        items=result.items,
        total=len(result.items),
        category_counts=category_counts(result.items),
    )


@router.get(
    "/catalog",
    response_model=FeedResponse,
    responses={503: {"description": "Feed could not be fetched", "model": ErrorResponse}},
    summary="Catalog feed with search and category filter",
)
async def catalog(
    q: str = Query(default="", description="Matches provider name or category, case-insensitive"),
    category: str = Query(default=ALL_CATEGORIES, description="Category chip; 'All' disables the filter"),
    feed: FeedComposer = Depends(get_feed),
):
    return _respond(await feed.catalog(q, category))


@router.get(
    "/personalized",
    response_model=FeedResponse,
    responses={503: {"description": "Feed could not be fetched", "model": ErrorResponse}},
    summary="Items from providers the viewer follows",
)
async def personalized(
    viewer_id: Optional[str] = Query(default=None, description="Omit for anonymous viewers"),
    feed: FeedComposer = Depends(get_feed),
):
    return _respond(await feed.personalized(viewer_id))


@router.get(
    "/items/{item_id}",
    response_model=ContentItem,
    responses={404: {"description": "Unknown item", "model": ErrorResponse}},
    summary="Single catalog item",
)
async def get_item(item_id: str, feed: FeedComposer = Depends(get_feed)) -> ContentItem:
    return await feed.get_item(item_id)
