"""
Viewer context enricher.

Computes booleans such as ``isLiked`` / ``isSubscribed``: true iff the
viewer's identifier equals the actor field of some element of a joined
array. Anonymous viewers always get false.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from channelviews.errors import ShapeError
from channelviews.identifiers import Identifier


def is_member(
    row: Mapping[str, Any],
    source: str,
    actor_field: str,
    viewer: Optional[Identifier],
) -> bool:
    if viewer is None:
        return False
    if not isinstance(viewer, Identifier):
        raise ShapeError(f"Viewer must be an Identifier, got {type(viewer).__name__}")
    elements = row.get(source) or []
    if not isinstance(elements, list):
        raise ShapeError(f"'{source}' is not a joined array")
    for element in elements:
        actor = element.get(actor_field)
        if actor is None:
            continue
        if not isinstance(actor, Identifier):
            raise ShapeError(f"'{source}.{actor_field}' holds an untyped value: {actor!r}")
        if actor == viewer:
            return True
    return False


@dataclass(frozen=True)
class ViewerFlag:
    output: str
    source: str
    actor_field: str


def apply_viewer_flags(
    rows: Sequence[dict],
    flags: Sequence[ViewerFlag],
    viewer: Optional[Identifier],
) -> list[dict]:
    out = []
    for row in rows:
        row = dict(row)
        for flag in flags:
            row[flag.output] = is_member(row, flag.source, flag.actor_field, viewer)
        out.append(row)
    return out
