"""
Video endpoints:
  GET /videos                 — published videos, optionally of one channel
  GET /videos/{id}/comments   — comments on a video
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from channelviews.composition import ViewType, compose
from channelviews.dependencies import get_store, get_viewer, page_params
from channelviews.schemas import ApiResponse
from channelviews.store.base import EntityStore

router = APIRouter()


@router.get("/", response_model=ApiResponse)
async def video_feed(
    channel_id: Optional[str] = Query(None, description="Only videos of this channel"),
    paging: dict = Depends(page_params),
    store: EntityStore = Depends(get_store),
    viewer: Optional[str] = Depends(get_viewer),
):
    params = {**paging, "channel_id": channel_id}
    data = await compose(store, ViewType.VIDEO_FEED, params, viewer)
    return ApiResponse(status=200, message="Videos fetched successfully", data=data)


@router.get("/{media_id}/comments", response_model=ApiResponse)
async def video_comments(
    media_id: str,
    paging: dict = Depends(page_params),
    store: EntityStore = Depends(get_store),
    viewer: Optional[str] = Depends(get_viewer),
):
    params = {**paging, "target_kind": "media", "target_id": media_id}
    data = await compose(store, ViewType.COMMENT_FEED, params, viewer)
    return ApiResponse(status=200, message="Comments fetched successfully", data=data)
