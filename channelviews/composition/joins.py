"""
Join resolver — composes one- and two-hop left-outer joins into entity graphs.

A ``JoinSpec`` attaches, to every base row, an array of rows from another
collection whose ``foreign_key`` equals the row's ``local_key``. Nested
specs run as a second hop over the first hop's rows only. Unmatched rows
keep an empty array; nothing is ever dropped.

Both keys must be identifier fields and every local value an
``Identifier`` (or missing reference). Anything else is a ShapeError.
Sibling joins at the same level are independent and issued concurrently;
their arrays are merged back by position, so completion order never
changes the result.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from channelviews.composition.fanout import fan_out
from channelviews.errors import ShapeError
from channelviews.identifiers import Identifier
from channelviews.store.base import EntityStore, Predicate, Sort
from channelviews.store.schema import schema_for

logger = logging.getLogger(__name__)

MAX_JOIN_DEPTH = 2


@dataclass(frozen=True)
class JoinSpec:
    collection: str
    local_key: str
    foreign_key: str
    as_field: str
    where: Mapping[str, Any] = field(default_factory=dict)
    nested: tuple["JoinSpec", ...] = ()

    def depth(self) -> int:
        return 1 + max((child.depth() for child in self.nested), default=0)


def validate_joins(collection: str, joins: Sequence[JoinSpec], depth: int = 1) -> None:
    """Static checks: depth, key types and field collisions."""
    base = schema_for(collection)
    seen = set()
    for spec in joins:
        if depth > MAX_JOIN_DEPTH:
            raise ShapeError(f"Join '{spec.as_field}' exceeds the maximum depth of {MAX_JOIN_DEPTH}")
        foreign = schema_for(spec.collection)
        base.require(spec.local_key)
        foreign.require(spec.foreign_key)
        if not (base.is_identifier(spec.local_key) and foreign.is_identifier(spec.foreign_key)):
            raise ShapeError(
                f"Join {collection}.{spec.local_key} → {spec.collection}.{spec.foreign_key} "
                "must relate identifier fields"
            )
        foreign.check_predicate(spec.where)
        if spec.as_field in base.fields or spec.as_field in seen:
            raise ShapeError(f"Join output '{spec.as_field}' collides with an existing field")
        seen.add(spec.as_field)
        validate_joins(spec.collection, spec.nested, depth + 1)


def _check_local_values(collection: str, spec: JoinSpec, rows: list[dict]) -> None:
    for row in rows:
        if spec.local_key not in row:
            raise ShapeError(f"{collection} row is missing join key '{spec.local_key}'")
        value = row[spec.local_key]
        if value is not None and not isinstance(value, Identifier):
            raise ShapeError(
                f"{collection}.{spec.local_key} holds {type(value).__name__}, "
                "expected Identifier; convert it before joining"
            )


class JoinResolver:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    async def resolve(
        self,
        collection: str,
        match: Predicate,
        joins: Sequence[JoinSpec] = (),
        sort: Sort = (),
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Find the base rows matching ``match`` and attach every join."""
        validate_joins(collection, joins)
        rows = await self.store.find(collection, match, sort, skip, limit)
        return await self.attach(collection, rows, joins)

    async def attach(
        self,
        collection: str,
        rows: list[dict],
        joins: Sequence[JoinSpec],
        depth: int = 1,
    ) -> list[dict]:
        if not joins or not rows:
            return [self._empty(dict(row), joins) for row in rows]
        if depth > MAX_JOIN_DEPTH:
            raise ShapeError(f"Join depth {depth} exceeds {MAX_JOIN_DEPTH}")

        results = await fan_out(
            *(self._attach_one(collection, rows, spec, depth) for spec in joins)
        )

        merged = [dict(row) for row in rows]
        for spec, joined in zip(joins, results):
            for target, source in zip(merged, joined):
                target[spec.as_field] = source[spec.as_field]
        return merged

    async def _attach_one(
        self, collection: str, rows: list[dict], spec: JoinSpec, depth: int
    ) -> list[dict]:
        _check_local_values(collection, spec, rows)
        joined = await self.store.join(
            spec.collection, spec.local_key, spec.foreign_key, rows, spec.as_field, spec.where
        )
        if not spec.nested:
            return joined

        # Second hop runs over the first hop's rows only, then is redistributed
        children = [child for row in joined for child in row[spec.as_field]]
        enriched = iter(await self.attach(spec.collection, children, spec.nested, depth + 1))
        for row in joined:
            row[spec.as_field] = [next(enriched) for _ in row[spec.as_field]]
        return joined

    @staticmethod
    def _empty(row: dict, joins: Sequence[JoinSpec]) -> dict:
        for spec in joins:
            row.setdefault(spec.as_field, [])
        return row
