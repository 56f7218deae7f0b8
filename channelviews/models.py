"""
SQLAlchemy ORM models.

Tables:
  accounts       — channel / user profiles
  media_items    — uploaded videos (binary assets live in the blob store)
  posts          — short text posts
  comments       — comments on a media item or a post
  reactions      — likes on a media item, post or comment
  follow_edges   — subscriptions (source subscribes to target)
  watch_entries  — per-account watch history

Identifier columns carry ``info=ID`` so the store adapter knows which
fields to convert to typed identifiers. Polymorphic targets are stored as
a (target_kind, target_id) pair rather than one nullable column per kind.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from channelviews.database import Base
from channelviews.identifiers import TargetKind

ID = {"identifier": True}
TARGET_KIND = {"enum": TargetKind}


def _uuid() -> str:
    return str(uuid.uuid4())


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, info=ID)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    avatar_ref: Mapped[Optional[str]] = mapped_column(String(500))
    cover_ref: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


class MediaItem(Base):
    __tablename__ = "media_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, info=ID)
    owner_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    # Blob store object keys
    video_ref: Mapped[Optional[str]] = mapped_column(String(500))
    thumbnail_ref: Mapped[Optional[str]] = mapped_column(String(500))
    duration: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_media_owner", "owner_id"),
        Index("idx_media_created", "created_at"),
    )


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, info=ID)
    owner_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("idx_posts_owner", "owner_id"),)


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, info=ID)
    owner_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    target_kind: Mapped[str] = mapped_column(String(16), nullable=False, info=TARGET_KIND)
    target_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("target_kind IN ('media', 'post')", name="ck_comment_target"),
        Index("idx_comments_target", "target_kind", "target_id"),
    )


class Reaction(Base):
    __tablename__ = "reactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, info=ID)
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    target_kind: Mapped[str] = mapped_column(String(16), nullable=False, info=TARGET_KIND)
    target_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("actor_id", "target_kind", "target_id", name="uq_reaction"),
        Index("idx_reactions_target", "target_kind", "target_id"),
        Index("idx_reactions_actor", "actor_id"),
    )


class FollowEdge(Base):
    __tablename__ = "follow_edges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, info=ID)
    source_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    target_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("source_id", "target_id", name="uq_follow_edge"),
        CheckConstraint("source_id <> target_id", name="ck_no_self_follow"),
        # Fast lookup "who subscribes to channel X?"
        Index("idx_follow_target", "target_id"),
    )


class WatchEntry(Base):
    __tablename__ = "watch_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, info=ID)
    account_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    media_id: Mapped[str] = mapped_column(String(36), nullable=False, info=ID)
    watched_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("idx_watch_account", "account_id", "watched_at"),)


MODELS = {
    model.__tablename__: model
    for model in (Account, MediaItem, Post, Comment, Reaction, FollowEdge, WatchEntry)
}
