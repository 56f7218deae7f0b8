"""
Declared views.

Each view is a fixed read model: which collection it starts from, which
stages it runs, what it joins, counts and flags, and exactly which fields
leave the service. Definitions are checked when this module is imported.
"""
import enum
from datetime import datetime
from typing import Any, Mapping, Optional, Union

from channelviews.composition.aggregates import Aggregate
from channelviews.composition.joins import JoinSpec
from channelviews.composition.pipeline import (
    Anchor,
    CompositionPipeline,
    ExternalCount,
    Param,
    Stage,
    Summary,
    Total,
    ViewDefinition,
)
from channelviews.composition.projection import Field, Nested
from channelviews.composition.viewer import ViewerFlag
from channelviews.errors import ValidationError
from channelviews.identifiers import TARGET_COLLECTIONS, TargetKind
from channelviews.store.base import EntityStore


class ViewType(str, enum.Enum):
    CHANNEL_PROFILE = "channel_profile"
    WATCH_HISTORY = "watch_history"
    VIDEO_FEED = "video_feed"
    POST_FEED = "post_feed"
    COMMENT_FEED = "comment_feed"
    LIKED_VIDEOS_FEED = "liked_videos_feed"
    CHANNEL_DASHBOARD = "channel_dashboard"
    CHANNEL_VIDEOS = "channel_videos"


V = Stage.PARAMETERS_VALIDATED
P = Stage.PAGINATED
J = Stage.JOINED
A = Stage.AGGREGATED
E = Stage.ENRICHED
PR = Stage.PROJECTED


def _date_parts(value: datetime) -> dict:
    return {"year": value.year, "month": value.month, "day": value.day}


# ── Shared building blocks ────────────────────────────────────────────────

OWNER = JoinSpec("accounts", "owner_id", "id", "owner")

# Public face of an account; never e-mail or cover art
OWNER_FIELDS = (
    Field("id"),
    Field("username"),
    Field("displayName", "display_name"),
    Field("avatarRef", "avatar_ref"),
)


def _reactions(kind: TargetKind) -> JoinSpec:
    return JoinSpec("reactions", "id", "target_id", "reactions", where={"target_kind": kind})


LIKES_COUNT = Aggregate("likes_count", "reactions")
IS_LIKED = ViewerFlag("is_liked", "reactions", "actor_id")

MEDIA_FIELDS = (
    Field("id"),
    Field("title"),
    Field("description"),
    Field("videoRef", "video_ref"),
    Field("thumbnailRef", "thumbnail_ref"),
    Field("duration"),
    Field("views"),
    Field("createdAt", "created_at"),
)

MEDIA_SORTS = {
    "createdAt": "created_at",
    "views": "views",
    "duration": "duration",
    "title": "title",
}

VIEWER_ACCOUNT = Param("account_id", "viewer")
ACCOUNT_ANCHOR = Anchor("account_id", "accounts", "Account")


# ── Views ─────────────────────────────────────────────────────────────────

CHANNEL_PROFILE = ViewDefinition(
    name=ViewType.CHANNEL_PROFILE.value,
    collection="accounts",
    stages=(V, J, A, E, PR),
    params=(Param("username", "text", lower=True),),
    match=lambda p: {"username": p["username"]},
    joins=(
        JoinSpec("follow_edges", "id", "target_id", "subscribers"),
        JoinSpec("follow_edges", "id", "source_id", "subscribed_to"),
    ),
    aggregates=(
        Aggregate("subscribers_count", "subscribers"),
        Aggregate("subscribed_to_count", "subscribed_to"),
    ),
    flags=(ViewerFlag("is_subscribed", "subscribers", "source_id"),),
    fields=OWNER_FIELDS
    + (
        Field("coverRef", "cover_ref"),
        Field("subscribersCount", "subscribers_count"),
        Field("subscribedToCount", "subscribed_to_count"),
        Field("isSubscribed", "is_subscribed"),
        Field("createdAt", "created_at"),
    ),
    single=True,
)

WATCH_HISTORY = ViewDefinition(
    name=ViewType.WATCH_HISTORY.value,
    collection="watch_entries",
    stages=(V, P, J, PR),
    params=(VIEWER_ACCOUNT,),
    anchor=ACCOUNT_ANCHOR,
    match=lambda p: {"account_id": p["account_id"]},
    joins=(JoinSpec("media_items", "media_id", "id", "media", nested=(OWNER,)),),
    fields=(
        Field("id"),
        Field("watchedAt", "watched_at"),
        Nested("video", "media", MEDIA_FIELDS + (Nested("owner", "owner", OWNER_FIELDS),)),
    ),
    sortable={"watchedAt": "watched_at"},
    default_sort="watchedAt",
)

VIDEO_FEED = ViewDefinition(
    name=ViewType.VIDEO_FEED.value,
    collection="media_items",
    stages=(V, P, J, A, E, PR),
    params=(Param("channel_id", required=False),),
    anchor=Anchor("channel_id", "accounts", "Channel"),
    match=lambda p: (
        {"is_published": True, "owner_id": p["channel_id"]}
        if p.get("channel_id") is not None
        else {"is_published": True}
    ),
    joins=(OWNER, _reactions(TargetKind.MEDIA)),
    aggregates=(LIKES_COUNT,),
    flags=(IS_LIKED,),
    fields=MEDIA_FIELDS
    + (
        Field("likesCount", "likes_count"),
        Field("isLiked", "is_liked"),
        Nested("owner", "owner", OWNER_FIELDS),
    ),
    sortable=MEDIA_SORTS,
)

POST_FEED = ViewDefinition(
    name=ViewType.POST_FEED.value,
    collection="posts",
    stages=(V, P, J, A, E, PR),
    params=(Param("owner_id"),),
    anchor=Anchor("owner_id", "accounts", "Account"),
    match=lambda p: {"owner_id": p["owner_id"]},
    joins=(OWNER, _reactions(TargetKind.POST)),
    aggregates=(LIKES_COUNT,),
    flags=(IS_LIKED,),
    fields=(
        Field("id"),
        Field("content"),
        Field("createdAt", "created_at"),
        Field("likesCount", "likes_count"),
        Field("isLiked", "is_liked"),
        Nested("owner", "owner", OWNER_FIELDS),
    ),
    sortable={"createdAt": "created_at"},
)

COMMENT_FEED = ViewDefinition(
    name=ViewType.COMMENT_FEED.value,
    collection="comments",
    stages=(V, P, J, A, E, PR),
    params=(
        Param(
            "target_kind",
            "target_kind",
            required=False,
            default=TargetKind.MEDIA,
            choices=(TargetKind.MEDIA, TargetKind.POST),
        ),
        Param("target_id"),
    ),
    anchor=Anchor("target_id", lambda p: TARGET_COLLECTIONS[p["target_kind"]], "Comment target"),
    match=lambda p: {"target_kind": p["target_kind"], "target_id": p["target_id"]},
    joins=(OWNER, _reactions(TargetKind.COMMENT)),
    aggregates=(LIKES_COUNT,),
    flags=(IS_LIKED,),
    fields=(
        Field("id"),
        Field("content"),
        Field("createdAt", "created_at"),
        Field("likesCount", "likes_count"),
        Field("isLiked", "is_liked"),
        Nested("owner", "owner", OWNER_FIELDS),
    ),
    sortable={"createdAt": "created_at"},
)

LIKED_VIDEOS_FEED = ViewDefinition(
    name=ViewType.LIKED_VIDEOS_FEED.value,
    collection="reactions",
    stages=(V, P, J, PR),
    params=(VIEWER_ACCOUNT,),
    anchor=ACCOUNT_ANCHOR,
    match=lambda p: {"actor_id": p["account_id"], "target_kind": TargetKind.MEDIA},
    joins=(JoinSpec("media_items", "target_id", "id", "media", nested=(OWNER,)),),
    fields=(
        Field("likedAt", "created_at"),
        Nested(
            "video",
            "media",
            MEDIA_FIELDS
            + (
                Field("isPublished", "is_published"),
                Nested("owner", "owner", OWNER_FIELDS),
            ),
        ),
    ),
    sortable={"likedAt": "created_at"},
    default_sort="likedAt",
)

CHANNEL_DASHBOARD = ViewDefinition(
    name=ViewType.CHANNEL_DASHBOARD.value,
    collection="media_items",
    stages=(V, J, A),
    params=(Param("channel_id", "viewer"),),
    anchor=Anchor("channel_id", "accounts", "Channel"),
    match=lambda p: {"owner_id": p["channel_id"]},
    joins=(_reactions(TargetKind.MEDIA),),
    aggregates=(LIKES_COUNT,),
    summary=Summary(
        totals=(
            Total("totalVideos"),
            Total("totalViews", "sum", "views"),
            Total("totalLikes", "sum", "likes_count"),
        ),
        counts=(
            ExternalCount(
                "totalSubscribers", "follow_edges", lambda p: {"target_id": p["channel_id"]}
            ),
        ),
    ),
)

CHANNEL_VIDEOS = ViewDefinition(
    name=ViewType.CHANNEL_VIDEOS.value,
    collection="media_items",
    stages=(V, P, J, A, PR),
    params=(Param("channel_id", "viewer"),),
    anchor=Anchor("channel_id", "accounts", "Channel"),
    match=lambda p: {"owner_id": p["channel_id"]},
    joins=(_reactions(TargetKind.MEDIA),),
    aggregates=(LIKES_COUNT,),
    fields=(
        Field("id"),
        Field("title"),
        Field("description"),
        Field("videoRef", "video_ref"),
        Field("thumbnailRef", "thumbnail_ref"),
        Field("isPublished", "is_published"),
        Field("likesCount", "likes_count"),
        Field("createdAt", "created_at", transform=_date_parts),
    ),
    sortable=MEDIA_SORTS,
)


VIEWS: dict[ViewType, ViewDefinition] = {
    ViewType.CHANNEL_PROFILE: CHANNEL_PROFILE,
    ViewType.WATCH_HISTORY: WATCH_HISTORY,
    ViewType.VIDEO_FEED: VIDEO_FEED,
    ViewType.POST_FEED: POST_FEED,
    ViewType.COMMENT_FEED: COMMENT_FEED,
    ViewType.LIKED_VIDEOS_FEED: LIKED_VIDEOS_FEED,
    ViewType.CHANNEL_DASHBOARD: CHANNEL_DASHBOARD,
    ViewType.CHANNEL_VIDEOS: CHANNEL_VIDEOS,
}


def get_view(view_type: Union[ViewType, str]) -> ViewDefinition:
    try:
        return VIEWS[ViewType(view_type)]
    except ValueError:
        raise ValidationError(
            f"Unknown view type: {view_type!r}", stage=Stage.PARAMETERS_VALIDATED.value
        ) from None


async def compose(
    store: EntityStore,
    view_type: Union[ViewType, str],
    parameters: Optional[Mapping[str, Any]] = None,
    viewer_identity: Any = None,
) -> Any:
    """
    Build the ``data`` payload of one view.

    ``viewer_identity`` is the pre-verified requester (or None for anonymous).
    Raises a stage-tagged CompositionError subclass instead of returning
    partial data.
    """
    view = get_view(view_type)
    return await CompositionPipeline(store, view, parameters, viewer_identity).run()
