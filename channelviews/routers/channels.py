"""
Channel endpoints:
  GET /channels/me/dashboard — totals for the viewer's own channel
  GET /channels/me/videos    — the viewer's uploads, published or not
  GET /channels/{username}   — public channel profile
"""
from typing import Optional

from fastapi import APIRouter, Depends

from channelviews.composition import ViewType, compose
from channelviews.dependencies import get_store, get_viewer, page_params
from channelviews.schemas import ApiResponse
from channelviews.store.base import EntityStore

router = APIRouter()


@router.get("/me/dashboard", response_model=ApiResponse)
async def channel_dashboard(
    store: EntityStore = Depends(get_store),
    viewer: Optional[str] = Depends(get_viewer),
):
    data = await compose(store, ViewType.CHANNEL_DASHBOARD, {}, viewer)
    return ApiResponse(status=200, message="Channel stats fetched successfully", data=data)


@router.get("/me/videos", response_model=ApiResponse)
async def channel_videos(
    paging: dict = Depends(page_params),
    store: EntityStore = Depends(get_store),
    viewer: Optional[str] = Depends(get_viewer),
):
    data = await compose(store, ViewType.CHANNEL_VIDEOS, paging, viewer)
    return ApiResponse(status=200, message="Channel videos fetched successfully", data=data)


@router.get("/{username}", response_model=ApiResponse)
async def channel_profile(
    username: str,
    store: EntityStore = Depends(get_store),
    viewer: Optional[str] = Depends(get_viewer),
):
    data = await compose(store, ViewType.CHANNEL_PROFILE, {"username": username}, viewer)
    return ApiResponse(status=200, message="Channel profile fetched successfully", data=data)
