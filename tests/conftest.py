"""Pytest configuration and fixtures."""
import os

# Keep the OTLP exporter out of test runs; must happen before settings load.
os.environ.setdefault("TRACING_ENABLED", "false")

from datetime import datetime, timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402

from channelviews.identifiers import TargetKind  # noqa: E402
from channelviews.store import MemoryEntityStore  # noqa: E402

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


def at(hours: float = 0, minutes: float = 0) -> datetime:
    return BASE_TIME + timedelta(hours=hours, minutes=minutes)


@pytest.fixture
def store():
    """Empty in-memory store with no retry backoff."""
    return MemoryEntityStore(retry_backoff=0)


@pytest.fixture
def world(store):
    """
    A small channel graph:

      alice  — channel with m1 (3 likes), m2 (no likes), m3 (unpublished)
      bob    — subscribes to alice, has one post liked by alice
      carol  — subscribes to alice
      dave   — never reacts to anything
      eve    — channel with no videos and no subscribers
    """
    accounts = {}
    for index, name in enumerate(["alice", "bob", "carol", "dave", "eve"]):
        accounts[name] = store.insert(
            "accounts",
            username=name,
            display_name=name.title(),
            email=f"{name}@example.com",
            avatar_ref=f"avatars/{name}.png",
            cover_ref=f"covers/{name}.png",
            created_at=at(hours=-100 + index),
        )
    alice, bob, carol = accounts["alice"], accounts["bob"], accounts["carol"]

    m1 = store.insert(
        "media_items", owner_id=alice["id"], title="First", views=100,
        duration=61.5, is_published=True, created_at=at(hours=1),
    )
    m2 = store.insert(
        "media_items", owner_id=alice["id"], title="Second", views=50,
        duration=30.0, is_published=True, created_at=at(hours=2),
    )
    m3 = store.insert(
        "media_items", owner_id=alice["id"], title="Draft", views=5,
        duration=10.0, is_published=False, created_at=at(hours=3),
    )

    for actor in (alice, bob, carol):
        store.insert(
            "reactions", actor_id=actor["id"], target_kind=TargetKind.MEDIA,
            target_id=m1["id"], created_at=at(hours=4),
        )

    store.insert("follow_edges", source_id=bob["id"], target_id=alice["id"])
    store.insert("follow_edges", source_id=carol["id"], target_id=alice["id"])
    store.insert("follow_edges", source_id=alice["id"], target_id=bob["id"])

    p1 = store.insert("posts", owner_id=bob["id"], content="hello", created_at=at(hours=5))
    store.insert("reactions", actor_id=alice["id"], target_kind=TargetKind.POST, target_id=p1["id"])

    c1 = store.insert(
        "comments", owner_id=bob["id"], target_kind=TargetKind.MEDIA,
        target_id=m1["id"], content="nice", created_at=at(hours=6),
    )
    c2 = store.insert(
        "comments", owner_id=carol["id"], target_kind=TargetKind.MEDIA,
        target_id=m1["id"], content="agreed", created_at=at(hours=7),
    )
    store.insert("reactions", actor_id=alice["id"], target_kind=TargetKind.COMMENT, target_id=c1["id"])

    store.insert("watch_entries", account_id=alice["id"], media_id=m2["id"], watched_at=at(hours=8))
    store.insert("watch_entries", account_id=alice["id"], media_id=m1["id"], watched_at=at(hours=9))

    return SimpleNamespace(
        store=store,
        m1=m1, m2=m2, m3=m3, p1=p1, c1=c1, c2=c2,
        **accounts,
    )
