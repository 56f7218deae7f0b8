"""
Entity store adapter base class.

Backends implement three primitives (``_find``, ``_match_many``, ``_count``)
over plain row dicts. The public ``find`` / ``join`` / ``count`` methods add
what every backend needs:

  • schema validation of collections, fields, predicates and sort keys
  • left-outer grouping for ``join`` (unmatched rows get an empty array)
  • one bounded retry when a backend raises StoreUnavailableError

A store is built once at startup and passed into every composition.
"""
import abc
import asyncio
import enum
import logging
from collections import defaultdict
from typing import Any, Iterable, Mapping, Optional, Sequence

from channelviews.config import settings
from channelviews.errors import ShapeError, StoreUnavailableError
from channelviews.store.schema import CollectionSchema, schema_for
from channelviews.telemetry import STORE_RETRIES_TOTAL

logger = logging.getLogger(__name__)

Predicate = Mapping[str, Any]


class Direction(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


Sort = Sequence[tuple[str, Direction]]


class EntityStore(abc.ABC):
    def __init__(
        self,
        *,
        retry_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ) -> None:
        self.retry_attempts = (
            settings.store_retry_attempts if retry_attempts is None else retry_attempts
        )
        self.retry_backoff = (
            settings.store_retry_backoff_seconds if retry_backoff is None else retry_backoff
        )

    # ── Public API ────────────────────────────────────────────────────────

    async def find(
        self,
        collection: str,
        predicate: Optional[Predicate] = None,
        sort: Sort = (),
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> list[dict]:
        schema = schema_for(collection)
        schema.check_predicate(predicate)
        for name, direction in sort:
            schema.require(name)
            if not isinstance(direction, Direction):
                raise ShapeError(f"Invalid sort direction for {collection}.{name}: {direction!r}")
        if skip < 0 or (limit is not None and limit < 0):
            raise ShapeError("skip and limit must be non-negative")
        return await self._with_retry(
            "find", self._find, schema, dict(predicate or {}), tuple(sort), skip, limit
        )

    async def join(
        self,
        collection: str,
        local_key: str,
        foreign_key: str,
        rows: Iterable[Mapping[str, Any]],
        as_field: str,
        where: Optional[Predicate] = None,
    ) -> list[dict]:
        """
        Attach to a copy of each row an array of ``collection`` rows whose
        ``foreign_key`` equals the row's ``local_key``. Row order is kept;
        arrays are ordered by identifier.
        """
        schema = schema_for(collection)
        schema.require(foreign_key)
        schema.check_predicate(where)
        rows = [dict(row) for row in rows]

        keys = {row.get(local_key) for row in rows} - {None}
        matches: list[dict] = []
        if keys:
            matches = await self._with_retry(
                "join", self._match_many, schema, foreign_key, keys, dict(where or {})
            )

        grouped: dict[Any, list[dict]] = defaultdict(list)
        for match in matches:
            grouped[match[foreign_key]].append(match)
        for row in rows:
            key = row.get(local_key)
            row[as_field] = list(grouped.get(key, [])) if key is not None else []
        return rows

    async def count(self, collection: str, predicate: Optional[Predicate] = None) -> int:
        schema = schema_for(collection)
        schema.check_predicate(predicate)
        return await self._with_retry("count", self._count, schema, dict(predicate or {}))

    async def close(self) -> None:
        """Release backend resources."""

    # ── Backend primitives ────────────────────────────────────────────────

    @abc.abstractmethod
    async def _find(
        self,
        schema: CollectionSchema,
        predicate: dict,
        sort: tuple,
        skip: int,
        limit: Optional[int],
    ) -> list[dict]:
        ...

    @abc.abstractmethod
    async def _match_many(
        self,
        schema: CollectionSchema,
        field: str,
        values: set,
        where: dict,
    ) -> list[dict]:
        """Rows whose ``field`` is one of ``values`` and which satisfy ``where``, by id."""

    @abc.abstractmethod
    async def _count(self, schema: CollectionSchema, predicate: dict) -> int:
        ...

    # ── Retry ─────────────────────────────────────────────────────────────

    async def _with_retry(self, operation: str, fn, *args):
        attempt = 0
        while True:
            try:
                return await fn(*args)
            except StoreUnavailableError as exc:
                if attempt >= self.retry_attempts:
                    logger.error("Store %s failed after %d attempt(s): %s", operation, attempt + 1, exc)
                    raise
                attempt += 1
                STORE_RETRIES_TOTAL.labels(operation=operation).inc()
                logger.warning("Store %s unavailable (%s) — retrying", operation, exc)
                if self.retry_backoff:
                    await asyncio.sleep(self.retry_backoff)
