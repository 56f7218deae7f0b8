"""
Page window computation.

Turns raw page / size / sort parameters into an offset window with a
deterministic ordering. Whenever the primary sort field is not unique,
``id`` ascending is appended as a tie-break so that consecutive pages
never repeat or skip a row. Validation happens here, before any store
access.
"""
import math
from dataclasses import dataclass
from typing import Any, Mapping

from channelviews.config import settings
from channelviews.errors import ValidationError
from channelviews.store.base import Direction

UNIQUE_FIELDS = frozenset({"id"})


@dataclass(frozen=True)
class PageWindow:
    page: int
    size: int
    sort: tuple[tuple[str, Direction], ...]

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size

    def envelope(self, items: list, total: int) -> dict:
        total_pages = math.ceil(total / self.size) if total else 0
        return {
            "items": items,
            "page": self.page,
            "size": self.size,
            "totalItems": total,
            "totalPages": total_pages,
            "hasNextPage": self.page < total_pages,
            "hasPrevPage": self.page > 1,
        }


def _positive_int(name: str, raw: Any, default: int) -> int:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise ValidationError(f"'{name}' must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be an integer, got {raw!r}") from None
    if isinstance(raw, float) and raw != value:
        raise ValidationError(f"'{name}' must be an integer, got {raw!r}")
    if value < 1:
        raise ValidationError(f"'{name}' must be at least 1, got {value}")
    return value


def _direction(raw: Any, default: Direction) -> Direction:
    if raw is None or raw == "":
        return default
    if isinstance(raw, Direction):
        return raw
    text = str(raw).strip().lower()
    if text in ("asc", "1"):
        return Direction.ASC
    if text in ("desc", "-1"):
        return Direction.DESC
    raise ValidationError(f"Sort direction must be 'asc' or 'desc', got {raw!r}")


def paginate(
    page: Any = None,
    size: Any = None,
    sort_by: Any = None,
    sort_dir: Any = None,
    *,
    sortable: Mapping[str, str],
    default_sort: str = "createdAt",
    default_direction: Direction = Direction.DESC,
) -> PageWindow:
    """
    Compute a page window.

    ``sortable`` maps public sort names (``createdAt``) to collection fields
    (``created_at``). ``size`` above the maximum is clamped; a non-positive
    ``page`` or ``size`` is rejected.
    """
    page_no = _positive_int("page", page, 1)
    page_size = min(_positive_int("size", size, settings.default_page_size), settings.max_page_size)
    if (page_no - 1) * page_size > settings.max_page_offset:
        raise ValidationError(f"'page' {page_no} is beyond the last reachable page for size {page_size}")

    sort_name = default_sort if sort_by in (None, "") else str(sort_by)
    if sort_name not in sortable:
        allowed = ", ".join(sorted(sortable))
        raise ValidationError(f"Cannot sort by '{sort_name}'; expected one of: {allowed}")
    field = sortable[sort_name]
    direction = _direction(sort_dir, default_direction)

    sort = [(field, direction)]
    if field not in UNIQUE_FIELDS:
        sort.append(("id", Direction.ASC))
    return PageWindow(page=page_no, size=page_size, sort=tuple(sort))


def window_params(parameters: Mapping[str, Any]) -> dict:
    """Pick the pagination keys out of a raw parameter mapping."""
    return {key: parameters.get(key) for key in ("page", "size", "sort_by", "sort_dir")}
