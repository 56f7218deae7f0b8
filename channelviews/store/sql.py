"""
SQLAlchemy-backed entity store.

Each primitive opens a short-lived session from the factory built at
startup, so a cancelled composition releases its connection when the
session context exits. Connection-level failures are reported as
StoreUnavailableError and retried once by the base class; any other
SQLAlchemy error is a rejected statement and surfaces as ShapeError.
"""
import enum
import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from channelviews.errors import ShapeError, StoreUnavailableError
from channelviews.identifiers import Identifier
from channelviews.models import MODELS
from channelviews.store.base import Direction, EntityStore
from channelviews.store.schema import CollectionSchema

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    PoolTimeoutError,
    ConnectionError,
    TimeoutError,
)


def _to_db(value: Any) -> Any:
    if isinstance(value, Identifier):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    return value


class SqlEntityStore(EntityStore):
    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._sessions = sessions
        self._engine = engine

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _clauses(model, predicate: dict) -> list:
        clauses = []
        for name, value in predicate.items():
            column = getattr(model, name)
            clauses.append(column.is_(None) if value is None else column == _to_db(value))
        return clauses

    @staticmethod
    def _to_row(schema: CollectionSchema, obj) -> dict:
        return schema.coerce({name: getattr(obj, name) for name in schema.fields})

    async def _rows(self, schema: CollectionSchema, stmt) -> list[dict]:
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                objs = result.scalars().all()
        except TRANSIENT_ERRORS as exc:
            raise StoreUnavailableError(f"{schema.name}: {exc}") from exc
        except SQLAlchemyError as exc:
            # Anything else is a statement the store rejects: never retried
            raise ShapeError(f"{schema.name}: {exc}") from exc
        return [self._to_row(schema, obj) for obj in objs]

    # ── Primitives ────────────────────────────────────────────────────────

    async def _find(
        self,
        schema: CollectionSchema,
        predicate: dict,
        sort: tuple,
        skip: int,
        limit: Optional[int],
    ) -> list[dict]:
        model = MODELS[schema.name]
        stmt = select(model).where(*self._clauses(model, predicate))
        for name, direction in sort:
            column = getattr(model, name)
            stmt = stmt.order_by(column.desc() if direction is Direction.DESC else column.asc())
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._rows(schema, stmt)

    async def _match_many(
        self,
        schema: CollectionSchema,
        field: str,
        values: set,
        where: dict,
    ) -> list[dict]:
        model = MODELS[schema.name]
        keys = sorted(_to_db(v) for v in values)
        stmt = (
            select(model)
            .where(getattr(model, field).in_(keys), *self._clauses(model, where))
            .order_by(model.id.asc())
        )
        return await self._rows(schema, stmt)

    async def _count(self, schema: CollectionSchema, predicate: dict) -> int:
        model = MODELS[schema.name]
        stmt = select(func.count()).select_from(model).where(*self._clauses(model, predicate))
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return int(result.scalar_one())
        except TRANSIENT_ERRORS as exc:
            raise StoreUnavailableError(f"{schema.name}: {exc}") from exc
        except SQLAlchemyError as exc:
            # Anything else is a statement the store rejects: never retried
            raise ShapeError(f"{schema.name}: {exc}") from exc
