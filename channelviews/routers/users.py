"""
Viewer-scoped endpoints:
  GET /users/me/history       — watch history, most recent first
  GET /users/me/liked-videos  — videos the viewer liked
"""
from typing import Optional

from fastapi import APIRouter, Depends

from channelviews.composition import ViewType, compose
from channelviews.dependencies import get_store, get_viewer, page_params
from channelviews.schemas import ApiResponse
from channelviews.store.base import EntityStore

router = APIRouter()


@router.get("/me/history", response_model=ApiResponse)
async def watch_history(
    paging: dict = Depends(page_params),
    store: EntityStore = Depends(get_store),
    viewer: Optional[str] = Depends(get_viewer),
):
    data = await compose(store, ViewType.WATCH_HISTORY, paging, viewer)
    return ApiResponse(status=200, message="Watch history fetched successfully", data=data)


@router.get("/me/liked-videos", response_model=ApiResponse)
async def liked_videos(
    paging: dict = Depends(page_params),
    store: EntityStore = Depends(get_store),
    viewer: Optional[str] = Depends(get_viewer),
):
    data = await compose(store, ViewType.LIKED_VIDEOS_FEED, paging, viewer)
    return ApiResponse(status=200, message="Liked videos fetched successfully", data=data)
