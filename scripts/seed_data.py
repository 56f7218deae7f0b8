#!/usr/bin/env python3
"""
Seed script — creates a realistic dataset for trying out the views.

Creates:
  • 10 accounts (channels)
  • A subscription graph (each account subscribes to 3-5 others)
  • 4 videos per account, most of them published
  • 3 posts per account
  • Comments and likes spread across videos, posts and comments
  • A short watch history per account

Writes go straight to the store through the ORM (this service itself is
read-only). Run against the same database the API uses:

  python scripts/seed_data.py --database-url mysql+aiomysql://root@localhost:3306/channel_views

Account ids are printed so you can pass them as the X-Viewer-Id header.
"""
import argparse
import asyncio
import random
from datetime import datetime, timedelta
from typing import Optional

from channelviews.config import settings
from channelviews.database import build_engine, build_session_factory, init_db
from channelviews.identifiers import TargetKind
from channelviews.models import Account, Comment, FollowEdge, MediaItem, Post, Reaction, WatchEntry

BASE_USERS = [
    ("alice_ai", "Alice Chen"),
    ("bob_builder", "Bob Martinez"),
    ("carol_codes", "Carol Singh"),
    ("dave_designs", "Dave Kim"),
    ("eve_engineer", "Eve Johnson"),
    ("frank_feeds", "Frank Williams"),
    ("grace_graphs", "Grace Li"),
    ("henry_hpc", "Henry Brown"),
    ("iris_infra", "Iris Davis"),
    ("jack_ml", "Jack Wilson"),
]

SAMPLE_TITLES = [
    "Zero downtime deploys, explained",
    "Vector databases in 10 minutes",
    "Why my Redis memory tripled",
    "Consumer groups from first principles",
    "Cold-start in recommendation systems",
    "Fan-out on write vs pull on read",
    "Tracing a request end to end",
    "Building dashboards people actually read",
]

SAMPLE_POSTS = [
    "New video is up — thanks for all the questions last week!",
    "Working on a deep dive into pagination bugs. Any horror stories?",
    "Subscriber count just doubled. You are all amazing.",
    "Live stream moved to Friday.",
    "Which topic should I cover next?",
]

SAMPLE_COMMENTS = [
    "Great explanation, thanks!",
    "Could you do a follow-up on this?",
    "The part at 4:20 cleared it up for me.",
    "I disagree with the second point, but nice video.",
    "Bookmarked.",
]


async def seed(database_url: Optional[str], seed_value: int) -> None:
    rng = random.Random(seed_value)
    if database_url:
        settings.database_url_override = database_url
    engine = build_engine(settings)
    await init_db(engine)
    sessions = build_session_factory(engine)
    now = datetime.utcnow()

    async with sessions() as db:
        # ── Accounts ─────────────────────────────────────────────────────
        print("Creating accounts...")
        accounts = [
            Account(
                username=username,
                display_name=display_name,
                email=f"{username}@example.com",
                avatar_ref=f"avatars/{username}.png",
                cover_ref=f"covers/{username}.png",
                created_at=now - timedelta(days=90),
            )
            for username, display_name in BASE_USERS
        ]
        db.add_all(accounts)
        await db.flush()
        for account in accounts:
            print(f"  {account.username:<14} {account.id}")

        # ── Subscriptions ────────────────────────────────────────────────
        print("\nCreating subscriptions...")
        edges = 0
        for account in accounts:
            others = [a for a in accounts if a.id != account.id]
            for target in rng.sample(others, rng.randint(3, 5)):
                db.add(FollowEdge(source_id=account.id, target_id=target.id))
                edges += 1
        print(f"  {edges} subscriptions")

        # ── Videos and posts ─────────────────────────────────────────────
        print("\nCreating videos and posts...")
        videos: list[MediaItem] = []
        posts: list[Post] = []
        for account in accounts:
            for title in rng.sample(SAMPLE_TITLES, 4):
                videos.append(
                    MediaItem(
                        owner_id=account.id,
                        title=title,
                        description=f"{title} — by {account.display_name}",
                        video_ref=f"videos/{account.username}/{len(videos)}.mp4",
                        thumbnail_ref=f"thumbnails/{account.username}/{len(videos)}.jpg",
                        duration=round(rng.uniform(60, 1800), 1),
                        views=rng.randint(0, 5000),
                        is_published=rng.random() > 0.2,
                        created_at=now - timedelta(hours=rng.randint(1, 24 * 60)),
                    )
                )
            for content in rng.sample(SAMPLE_POSTS, 3):
                posts.append(
                    Post(
                        owner_id=account.id,
                        content=content,
                        created_at=now - timedelta(hours=rng.randint(1, 24 * 30)),
                    )
                )
        db.add_all(videos + posts)
        await db.flush()
        print(f"  {len(videos)} videos, {len(posts)} posts")

        # ── Comments ─────────────────────────────────────────────────────
        print("\nCreating comments...")
        comments: list[Comment] = []
        for video in videos:
            for author in rng.sample(accounts, rng.randint(0, 4)):
                comments.append(
                    Comment(
                        owner_id=author.id,
                        target_kind=TargetKind.MEDIA.value,
                        target_id=video.id,
                        content=rng.choice(SAMPLE_COMMENTS),
                        created_at=now - timedelta(minutes=rng.randint(1, 60 * 24 * 7)),
                    )
                )
        for post in posts:
            for author in rng.sample(accounts, rng.randint(0, 2)):
                comments.append(
                    Comment(
                        owner_id=author.id,
                        target_kind=TargetKind.POST.value,
                        target_id=post.id,
                        content=rng.choice(SAMPLE_COMMENTS),
                    )
                )
        db.add_all(comments)
        await db.flush()
        print(f"  {len(comments)} comments")

        # ── Likes ────────────────────────────────────────────────────────
        print("\nCreating likes...")
        likes = 0
        targets = (
            [(TargetKind.MEDIA, v.id) for v in videos]
            + [(TargetKind.POST, p.id) for p in posts]
            + [(TargetKind.COMMENT, c.id) for c in comments]
        )
        for account in accounts:
            for kind, target_id in rng.sample(targets, min(len(targets), 12)):
                db.add(Reaction(actor_id=account.id, target_kind=kind.value, target_id=target_id))
                likes += 1
        print(f"  {likes} likes")

        # ── Watch history ────────────────────────────────────────────────
        print("\nCreating watch history...")
        published = [v for v in videos if v.is_published]
        for account in accounts:
            for minutes, video in enumerate(rng.sample(published, min(len(published), 8))):
                db.add(
                    WatchEntry(
                        account_id=account.id,
                        media_id=video.id,
                        watched_at=now - timedelta(minutes=minutes * 17),
                    )
                )

        await db.commit()

    await engine.dispose()
    print("\n✓ Seed complete.")
    print(f"Try: curl -H 'X-Viewer-Id: {accounts[0].id}' http://localhost:8000/channels/me/dashboard")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the channel views store")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy async URL")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()
    asyncio.run(seed(args.database_url, args.seed))
