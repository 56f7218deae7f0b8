"""
Post endpoints:
  GET /posts/user/{account_id}   — posts by one account
  GET /posts/{post_id}/comments  — comments on a post
"""
from typing import Optional

from fastapi import APIRouter, Depends

from channelviews.composition import ViewType, compose
from channelviews.dependencies import get_store, get_viewer, page_params
from channelviews.schemas import ApiResponse
from channelviews.store.base import EntityStore

router = APIRouter()


@router.get("/user/{account_id}", response_model=ApiResponse)
async def user_posts(
    account_id: str,
    paging: dict = Depends(page_params),
    store: EntityStore = Depends(get_store),
    viewer: Optional[str] = Depends(get_viewer),
):
    params = {**paging, "owner_id": account_id}
    data = await compose(store, ViewType.POST_FEED, params, viewer)
    return ApiResponse(status=200, message="User posts fetched successfully", data=data)


@router.get("/{post_id}/comments", response_model=ApiResponse)
async def post_comments(
    post_id: str,
    paging: dict = Depends(page_params),
    store: EntityStore = Depends(get_store),
    viewer: Optional[str] = Depends(get_viewer),
):
    params = {**paging, "target_kind": "post", "target_id": post_id}
    data = await compose(store, ViewType.COMMENT_FEED, params, viewer)
    return ApiResponse(status=200, message="Comments fetched successfully", data=data)
