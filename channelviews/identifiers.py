"""
Typed identifiers and polymorphic target kinds.

Every key the store hands out is wrapped in an ``Identifier``. Raw strings
are converted explicitly through ``Identifier.parse``; an ``Identifier`` is
never equal to its string form, so a forgotten conversion shows up as a
mismatch instead of a silent match.
"""
import enum
import uuid
from dataclasses import dataclass
from typing import Any

from channelviews.errors import ValidationError


@dataclass(frozen=True, order=True)
class Identifier:
    value: uuid.UUID

    @classmethod
    def new(cls) -> "Identifier":
        return cls(uuid.uuid4())

    @classmethod
    def parse(cls, raw: Any) -> "Identifier":
        """Convert a stored or user-supplied value; raises ValidationError if malformed."""
        if isinstance(raw, Identifier):
            return raw
        if isinstance(raw, uuid.UUID):
            return cls(raw)
        if isinstance(raw, str):
            try:
                return cls(uuid.UUID(raw.strip()))
            except ValueError:
                pass
        raise ValidationError(f"Malformed identifier: {raw!r}")

    def __str__(self) -> str:
        return str(self.value)


class TargetKind(str, enum.Enum):
    """What a Reaction or Comment points at."""

    MEDIA = "media"
    POST = "post"
    COMMENT = "comment"

    @classmethod
    def parse(cls, raw: Any) -> "TargetKind":
        if isinstance(raw, TargetKind):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown target kind: {raw!r}") from None


# Collection holding the entities of each target kind
TARGET_COLLECTIONS = {
    TargetKind.MEDIA: "media_items",
    TargetKind.POST: "posts",
    TargetKind.COMMENT: "comments",
}

