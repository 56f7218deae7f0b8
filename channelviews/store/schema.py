"""
Collection schemas derived from the ORM metadata.

A schema knows a collection's field names, which of them hold identifiers
and which hold enum tags. ``coerce`` is the single explicit conversion step
from stored representation to typed row values.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from channelviews.errors import ShapeError, ValidationError
from channelviews.identifiers import Identifier
from channelviews.models import MODELS


@dataclass(frozen=True, eq=False)
class CollectionSchema:
    name: str
    fields: frozenset
    identifier_fields: frozenset
    enum_fields: Mapping[str, type] = field(default_factory=dict)

    def require(self, name: str) -> None:
        if name not in self.fields:
            raise ShapeError(f"Collection '{self.name}' has no field '{name}'")

    def is_identifier(self, name: str) -> bool:
        return name in self.identifier_fields

    def coerce(self, raw: Mapping[str, Any]) -> dict:
        """Convert one stored row into a row with typed identifiers and enum tags."""
        row = {}
        for name in self.fields:
            value = raw.get(name)
            if value is not None and name in self.identifier_fields:
                try:
                    value = Identifier.parse(value)
                except ValidationError:
                    raise ShapeError(
                        f"{self.name}.{name} holds a malformed identifier: {value!r}"
                    ) from None
            elif value is not None and name in self.enum_fields:
                enum_type = self.enum_fields[name]
                try:
                    value = enum_type(value)
                except ValueError:
                    raise ShapeError(
                        f"{self.name}.{name} holds an unknown tag: {value!r}"
                    ) from None
            row[name] = value
        return row

    def check_predicate(self, predicate: Optional[Mapping[str, Any]]) -> None:
        """Reject predicates that would compare untyped values against typed fields."""
        for name, value in (predicate or {}).items():
            self.require(name)
            if value is None:
                continue
            if name in self.identifier_fields and not isinstance(value, Identifier):
                raise ShapeError(
                    f"{self.name}.{name} must be matched with an Identifier, got {type(value).__name__}"
                )
            enum_type = self.enum_fields.get(name)
            if enum_type is not None and not isinstance(value, enum_type):
                raise ShapeError(
                    f"{self.name}.{name} must be matched with {enum_type.__name__}"
                )


def schema_from_model(model) -> CollectionSchema:
    columns = list(model.__table__.columns)
    return CollectionSchema(
        name=model.__tablename__,
        fields=frozenset(c.key for c in columns),
        identifier_fields=frozenset(c.key for c in columns if c.info.get("identifier")),
        enum_fields={
            c.key: c.info["enum"]
            for c in columns
            if isinstance(c.info.get("enum"), type) and issubclass(c.info["enum"], enum.Enum)
        },
    )


COLLECTIONS: dict[str, CollectionSchema] = {
    name: schema_from_model(model) for name, model in MODELS.items()
}


def schema_for(collection: str) -> CollectionSchema:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ShapeError(f"Unknown collection '{collection}'") from None
