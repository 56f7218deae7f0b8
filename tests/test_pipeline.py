"""End-to-end compositions against the in-memory store."""
import asyncio

import pytest

from channelviews.composition import Stage, ViewType, compose
from channelviews.composition.joins import JoinSpec
from channelviews.composition.pipeline import Param, ViewDefinition
from channelviews.composition.projection import Field, Nested
from channelviews.errors import (
    NotFoundError,
    ShapeError,
    StoreUnavailableError,
    ValidationError,
    ViewerRequiredError,
)
from channelviews.identifiers import TargetKind
from channelviews.store import MemoryEntityStore

from tests.conftest import at


def run(store, view, params=None, viewer=None):
    return asyncio.run(compose(store, view, params or {}, viewer))


def _by_title(page):
    return {item["title"]: item for item in page["items"]}


# ── Likes and viewer flags ────────────────────────────────────────────────

def test_likes_count_and_is_liked_for_reactor(world):
    videos = _by_title(run(world.store, ViewType.VIDEO_FEED, viewer=str(world.alice["id"])))
    assert videos["First"]["likesCount"] == 3
    assert videos["First"]["isLiked"] is True


def test_likes_count_and_is_liked_for_non_reactor(world):
    videos = _by_title(run(world.store, ViewType.VIDEO_FEED, viewer=str(world.dave["id"])))
    assert videos["First"]["likesCount"] == 3
    assert videos["First"]["isLiked"] is False


@pytest.mark.parametrize("viewer", [None, "alice", "dave"])
def test_zero_reactions_means_zero_and_false(world, viewer):
    identity = None if viewer is None else str(getattr(world, viewer)["id"])
    videos = _by_title(run(world.store, ViewType.VIDEO_FEED, viewer=identity))
    assert videos["Second"]["likesCount"] == 0
    assert videos["Second"]["isLiked"] is False


def test_anonymous_viewer_gets_false_flags_without_error(world):
    page = run(world.store, ViewType.VIDEO_FEED)
    assert [item["isLiked"] for item in page["items"]] == [False, False]


def test_video_feed_hides_unpublished_and_limits_owner_fields(world):
    page = run(world.store, ViewType.VIDEO_FEED, {"channel_id": str(world.alice["id"])})
    assert {item["title"] for item in page["items"]} == {"First", "Second"}
    owner = page["items"][0]["owner"]
    assert set(owner) == {"id", "username", "displayName", "avatarRef"}


def test_video_feed_for_unknown_channel(world):
    with pytest.raises(NotFoundError) as info:
        run(world.store, ViewType.VIDEO_FEED, {"channel_id": "6f1c0e8a-0000-4000-8000-000000000000"})
    assert info.value.stage == Stage.JOINED.value


# ── Pagination ────────────────────────────────────────────────────────────

@pytest.fixture
def busy_video(world):
    """25 comments; timestamps come in pairs so ties must be broken by id."""
    for n in range(25):
        world.store.insert(
            "comments",
            owner_id=world.bob["id"],
            target_kind=TargetKind.MEDIA,
            target_id=world.m2["id"],
            content=f"comment {n}",
            created_at=at(hours=10, minutes=n // 2),
        )
    return world


def _comment_page(world, page, size):
    params = {"target_id": str(world.m2["id"]), "page": page, "size": size}
    return run(world.store, ViewType.COMMENT_FEED, params)


def _expected_order(world):
    rows = [
        r for r in world.store._collections["comments"] if r["target_id"] == world.m2["id"]
    ]
    rows.sort(key=lambda r: r["id"])
    rows.sort(key=lambda r: r["created_at"], reverse=True)
    return [str(r["id"]) for r in rows]


def test_second_page_of_comment_feed(busy_video):
    page = _comment_page(busy_video, 2, 10)
    ids = [item["id"] for item in page["items"]]
    assert ids == _expected_order(busy_video)[10:20]
    assert page["totalItems"] == 25
    assert page["totalPages"] == 3
    stamps = [item["createdAt"] for item in page["items"]]
    assert stamps == sorted(stamps, reverse=True)


def test_consecutive_pages_have_no_duplicates(busy_video):
    seen = []
    for page_no in (1, 2, 3, 4):
        page = _comment_page(busy_video, page_no, 7)
        assert len(page["items"]) <= 7
        seen.extend(item["id"] for item in page["items"])
    assert len(seen) == len(set(seen)) == 25
    assert seen == _expected_order(busy_video)


def test_bad_pagination_fails_before_store_access(world):
    calls = []

    class CountingStore(MemoryEntityStore):
        async def _find(self, *args):
            calls.append("find")
            return await super()._find(*args)

        async def _count(self, *args):
            calls.append("count")
            return await super()._count(*args)

    counting = CountingStore()
    with pytest.raises(ValidationError) as info:
        run(counting, ViewType.COMMENT_FEED, {"target_id": str(world.m1["id"]), "page": 0})
    assert info.value.stage == Stage.PAGINATED.value
    assert calls == []


def test_comment_feed_flags_and_owner(world):
    page = run(
        world.store,
        ViewType.COMMENT_FEED,
        {"target_id": str(world.m1["id"])},
        viewer=str(world.alice["id"]),
    )
    by_content = {item["content"]: item for item in page["items"]}
    assert by_content["nice"]["likesCount"] == 1
    assert by_content["nice"]["isLiked"] is True
    assert by_content["agreed"]["likesCount"] == 0
    assert by_content["nice"]["owner"]["username"] == "bob"
    # newest first
    assert [item["content"] for item in page["items"]] == ["agreed", "nice"]


def test_comment_feed_on_missing_target(world):
    with pytest.raises(NotFoundError):
        run(world.store, ViewType.COMMENT_FEED, {"target_kind": "post", "target_id": str(world.m1["id"])})


def test_comment_feed_rejects_comment_targets(world):
    with pytest.raises(ValidationError):
        run(world.store, ViewType.COMMENT_FEED, {"target_kind": "comment", "target_id": str(world.c1["id"])})


# ── Channel views ─────────────────────────────────────────────────────────

def test_channel_dashboard_totals(world):
    stats = run(world.store, ViewType.CHANNEL_DASHBOARD, viewer=str(world.alice["id"]))
    assert stats == {
        "totalVideos": 3,
        "totalViews": 155,
        "totalLikes": 3,
        "totalSubscribers": 2,
    }


def test_channel_dashboard_without_followers_is_all_zero(world):
    stats = run(world.store, ViewType.CHANNEL_DASHBOARD, viewer=str(world.eve["id"]))
    assert stats["totalSubscribers"] == 0
    assert stats == {"totalVideos": 0, "totalViews": 0, "totalLikes": 0, "totalSubscribers": 0}


def test_channel_dashboard_requires_viewer(world):
    with pytest.raises(ViewerRequiredError) as info:
        run(world.store, ViewType.CHANNEL_DASHBOARD)
    assert info.value.stage == Stage.PARAMETERS_VALIDATED.value


def test_channel_profile(world):
    profile = run(world.store, ViewType.CHANNEL_PROFILE, {"username": "ALICE"}, str(world.bob["id"]))
    assert profile["username"] == "alice"
    assert profile["subscribersCount"] == 2
    assert profile["subscribedToCount"] == 1
    assert profile["isSubscribed"] is True
    assert "email" not in profile

    as_dave = run(world.store, ViewType.CHANNEL_PROFILE, {"username": "alice"}, str(world.dave["id"]))
    assert as_dave["isSubscribed"] is False


def test_channel_profile_not_found(world):
    with pytest.raises(NotFoundError) as info:
        run(world.store, ViewType.CHANNEL_PROFILE, {"username": "nobody"})
    assert info.value.stage == Stage.JOINED.value


def test_channel_videos_include_drafts_with_date_parts(world):
    page = run(world.store, ViewType.CHANNEL_VIDEOS, viewer=str(world.alice["id"]))
    videos = _by_title(page)
    assert set(videos) == {"First", "Second", "Draft"}
    assert videos["Draft"]["isPublished"] is False
    assert videos["First"]["createdAt"] == {"year": 2026, "month": 1, "day": 1}
    assert videos["First"]["likesCount"] == 3


# ── Viewer-scoped feeds ───────────────────────────────────────────────────

def test_watch_history_newest_first_with_owner(world):
    page = run(world.store, ViewType.WATCH_HISTORY, viewer=str(world.alice["id"]))
    titles = [item["video"]["title"] for item in page["items"]]
    assert titles == ["First", "Second"]
    assert page["items"][0]["video"]["owner"]["username"] == "alice"


def test_liked_videos_keep_rows_for_deleted_videos(world):
    viewer = str(world.bob["id"])
    page = run(world.store, ViewType.LIKED_VIDEOS_FEED, viewer=viewer)
    assert [item["video"]["title"] for item in page["items"]] == ["First"]

    world.store.delete("media_items", world.m1["id"])
    page = run(world.store, ViewType.LIKED_VIDEOS_FEED, viewer=viewer)
    assert page["totalItems"] == 1
    assert page["items"][0]["video"] is None


def test_post_feed(world):
    page = run(world.store, ViewType.POST_FEED, {"owner_id": str(world.bob["id"])}, str(world.alice["id"]))
    (post,) = page["items"]
    assert post["content"] == "hello"
    assert post["likesCount"] == 1
    assert post["isLiked"] is True


# ── Errors ────────────────────────────────────────────────────────────────

def test_unknown_view_type(world):
    with pytest.raises(ValidationError):
        run(world.store, "trending")


def test_malformed_viewer(world):
    with pytest.raises(ValidationError) as info:
        run(world.store, ViewType.VIDEO_FEED, viewer="not-an-id")
    assert info.value.stage == Stage.PARAMETERS_VALIDATED.value


def test_malformed_parameter_identifier(world):
    with pytest.raises(ValidationError):
        run(world.store, ViewType.POST_FEED, {"owner_id": "12"})


def test_persistent_store_failure_aborts_with_stage(world):
    class DownStore(MemoryEntityStore):
        async def _count(self, *args):
            raise StoreUnavailableError("connection refused")

    with pytest.raises(StoreUnavailableError) as info:
        run(DownStore(retry_backoff=0), ViewType.POST_FEED, {"owner_id": str(world.bob["id"])})
    assert info.value.stage == Stage.JOINED.value


def test_drifted_row_becomes_shape_error(world):
    # A raw string sneaking into a stored row must not be compared as if typed
    world.store._collections["reactions"][0]["actor_id"] = str(world.alice["id"])
    with pytest.raises(ShapeError) as info:
        run(world.store, ViewType.VIDEO_FEED, viewer=str(world.alice["id"]))
    assert info.value.stage == Stage.ENRICHED.value


# ── Determinism and concurrency ───────────────────────────────────────────

def test_composing_twice_is_idempotent(busy_video):
    viewer = str(busy_video.alice["id"])
    first = run(busy_video.store, ViewType.VIDEO_FEED, {"size": 5}, viewer)
    second = run(busy_video.store, ViewType.VIDEO_FEED, {"size": 5}, viewer)
    assert first == second


def test_concurrent_compositions_do_not_interfere(world):
    async def scenario():
        return await asyncio.gather(
            compose(world.store, ViewType.VIDEO_FEED, {}, str(world.alice["id"])),
            compose(world.store, ViewType.VIDEO_FEED, {}, str(world.dave["id"])),
            compose(world.store, ViewType.CHANNEL_DASHBOARD, {}, str(world.alice["id"])),
        )

    as_alice, as_dave, stats = asyncio.run(scenario())
    assert _by_title(as_alice)["First"]["isLiked"] is True
    assert _by_title(as_dave)["First"]["isLiked"] is False
    assert stats["totalLikes"] == 3


def test_cancellation_leaves_no_tasks_behind(world):
    class SlowStore(MemoryEntityStore):
        async def _find(self, *args):
            await asyncio.sleep(10)

    async def scenario():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(compose(SlowStore(), ViewType.VIDEO_FEED), timeout=0.05)
        await asyncio.sleep(0)
        return [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]

    assert asyncio.run(scenario()) == []


# ── Declaration checks ────────────────────────────────────────────────────

def _declare(**overrides):
    options = dict(
        name="broken",
        collection="media_items",
        stages=(Stage.PARAMETERS_VALIDATED, Stage.JOINED, Stage.PROJECTED),
        match=lambda p: {},
        single=True,
        fields=(Field("id"),),
    )
    options.update(overrides)
    return ViewDefinition(**options)


def test_valid_declaration():
    assert _declare().name == "broken"


def test_declaration_rejects_unknown_allowlisted_field():
    with pytest.raises(ShapeError):
        _declare(fields=(Field("password"),))


def test_declaration_rejects_unknown_nested_field():
    owner = JoinSpec("accounts", "owner_id", "id", "owner")
    with pytest.raises(ShapeError):
        _declare(joins=(owner,), fields=(Nested("owner", "owner", (Field("password_hash"),)),))


def test_declaration_rejects_out_of_order_stages():
    with pytest.raises(ShapeError):
        _declare(stages=(Stage.PARAMETERS_VALIDATED, Stage.PROJECTED, Stage.JOINED))


def test_declaration_rejects_undeclared_anchor_param():
    from channelviews.composition.pipeline import Anchor

    with pytest.raises(ShapeError):
        _declare(params=(Param("x"),), anchor=Anchor("y", "accounts", "Y"))


def test_arithmetic_failure_in_store_is_tagged_with_its_stage():
    class OverflowingStore(MemoryEntityStore):
        async def _find(self, *args):
            raise OverflowError("int too large to convert")

    store = OverflowingStore(retry_backoff=0)
    owner = store.insert("accounts", username="bob", display_name="Bob")
    with pytest.raises(ShapeError) as info:
        run(store, ViewType.POST_FEED, {"owner_id": str(owner["id"])})
    assert info.value.stage == Stage.JOINED.value
