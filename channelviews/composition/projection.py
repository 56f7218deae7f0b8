"""
View projector — narrows an enriched graph to a declared allowlist.

Output shapes are declared once per view as a tree of ``Field`` and
``Nested`` entries. The projector only ever copies what is declared, so
sensitive fields of joined rows (e-mail addresses, blob keys not meant for
a view) cannot leak through a nested join.
"""
import enum
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from channelviews.errors import ShapeError
from channelviews.identifiers import Identifier


@dataclass(frozen=True)
class Field:
    name: str
    source: Optional[str] = None
    transform: Optional[Callable[[Any], Any]] = None

    @property
    def key(self) -> str:
        return self.source or self.name


@dataclass(frozen=True)
class Nested:
    """A sub-object taken from a joined array (first element) or a list of them."""

    name: str
    source: str
    fields: tuple["Entry", ...]
    many: bool = False


Entry = Union[Field, Nested]


def check_allowlist(entries: Sequence[Entry]) -> None:
    names = [entry.name for entry in entries]
    duplicates = {name for name in names if names.count(name) > 1}
    if duplicates:
        raise ShapeError(f"Duplicate output fields: {', '.join(sorted(duplicates))}")
    for entry in entries:
        if isinstance(entry, Nested):
            check_allowlist(entry.fields)


def render(value: Any) -> Any:
    if isinstance(value, Identifier):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    return value


def project(row: Mapping[str, Any], entries: Sequence[Entry]) -> dict:
    out = {}
    for entry in entries:
        if isinstance(entry, Field):
            if entry.key not in row:
                raise ShapeError(f"Projected field '{entry.key}' is missing")
            value = row[entry.key]
            if entry.transform is not None and value is not None:
                value = entry.transform(value)
            out[entry.name] = render(value)
            continue

        nested = row.get(entry.source)
        if nested is None:
            items = []
        elif isinstance(nested, list):
            items = nested
        elif isinstance(nested, Mapping):
            items = [nested]
        else:
            raise ShapeError(f"'{entry.source}' cannot be projected as an object")

        if entry.many:
            out[entry.name] = [project(item, entry.fields) for item in items]
        else:
            out[entry.name] = project(items[0], entry.fields) if items else None
    return out


def project_all(rows: Sequence[Mapping[str, Any]], entries: Sequence[Entry]) -> list[dict]:
    return [project(row, entries) for row in rows]
