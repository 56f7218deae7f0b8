"""
In-process entity store.

Holds each collection as a list of typed rows. Used for local runs
(``store_backend=memory``) and as the store behind the test-suite. Every
primitive yields to the event loop once so cancellation and concurrent
fan-out behave as they do against a real store.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from channelviews.errors import ShapeError
from channelviews.identifiers import Identifier
from channelviews.store.base import Direction, EntityStore
from channelviews.store.schema import CollectionSchema, COLLECTIONS, schema_for

logger = logging.getLogger(__name__)


def _matches(row: dict, predicate: dict) -> bool:
    return all(row.get(name) == value for name, value in predicate.items())


def _sort_key(value: Any) -> tuple:
    # None sorts before any value
    return (value is not None, value)


def sort_rows(rows: list[dict], sort: tuple) -> list[dict]:
    """Stable multi-key sort honouring per-key direction."""
    rows = list(rows)
    for name, direction in reversed(sort):
        rows.sort(key=lambda r: _sort_key(r.get(name)), reverse=direction is Direction.DESC)
    return rows


class MemoryEntityStore(EntityStore):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._collections: dict[str, list[dict]] = {name: [] for name in COLLECTIONS}

    # ── Seeding helpers (writes are outside the read core) ───────────────

    def insert(self, collection: str, **fields: Any) -> dict:
        schema = schema_for(collection)
        for name in fields:
            schema.require(name)
        raw = dict(fields)
        if raw.get("id") is None:
            raw["id"] = Identifier.new()
        for name in ("created_at", "watched_at"):
            if name in schema.fields and raw.get(name) is None:
                raw[name] = datetime.now(timezone.utc).replace(tzinfo=None)
        row = schema.coerce(raw)
        self._collections[collection].append(row)
        return dict(row)

    def delete(self, collection: str, identifier: Identifier) -> bool:
        rows = self._collections[schema_for(collection).name]
        for index, row in enumerate(rows):
            if row["id"] == identifier:
                del rows[index]
                return True
        return False

    # ── Primitives ────────────────────────────────────────────────────────

    async def _find(
        self,
        schema: CollectionSchema,
        predicate: dict,
        sort: tuple,
        skip: int,
        limit: Optional[int],
    ) -> list[dict]:
        await asyncio.sleep(0)
        rows = [r for r in self._collections[schema.name] if _matches(r, predicate)]
        rows = sort_rows(rows, sort)
        end = None if limit is None else skip + limit
        return [dict(r) for r in rows[skip:end]]

    async def _match_many(
        self,
        schema: CollectionSchema,
        field: str,
        values: set,
        where: dict,
    ) -> list[dict]:
        await asyncio.sleep(0)
        bad = [v for v in values if schema.is_identifier(field) and not isinstance(v, Identifier)]
        if bad:
            raise ShapeError(f"{schema.name}.{field} cannot be matched against {bad[0]!r}")
        rows = [
            r
            for r in self._collections[schema.name]
            if r.get(field) in values and _matches(r, where)
        ]
        return [dict(r) for r in sort_rows(rows, (("id", Direction.ASC),))]

    async def _count(self, schema: CollectionSchema, predicate: dict) -> int:
        await asyncio.sleep(0)
        return sum(1 for r in self._collections[schema.name] if _matches(r, predicate))
