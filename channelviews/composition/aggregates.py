"""
Aggregate calculator — counts and sums over joined arrays.

Aggregates are always derived at read time. A joined array that is empty
or was never produced yields 0, never None.
"""
from dataclasses import dataclass
from numbers import Number
from typing import Any, Iterable, Literal, Mapping, Optional, Sequence, Union

from channelviews.errors import ShapeError

Numeric = Union[int, float]


def _array(row: Mapping[str, Any], source: str) -> list:
    value = row.get(source)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ShapeError(f"'{source}' is not a joined array ({type(value).__name__})")
    return value


def _number(value: Any, name: str) -> Numeric:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, Number):
        raise ShapeError(f"'{name}' is not numeric: {value!r}")
    return value


def count_of(row: Mapping[str, Any], source: str) -> int:
    return len(_array(row, source))


def sum_of(row: Mapping[str, Any], source: str, value_field: str) -> Numeric:
    return sum((_number(item.get(value_field), value_field) for item in _array(row, source)), 0)


def total(rows: Iterable[Mapping[str, Any]], value_field: str) -> Numeric:
    """Sum a numeric field across rows (not across a joined array)."""
    return sum((_number(row.get(value_field), value_field) for row in rows), 0)


@dataclass(frozen=True)
class Aggregate:
    output: str
    source: str
    kind: Literal["count", "sum"] = "count"
    value_field: Optional[str] = None

    def compute(self, row: Mapping[str, Any]) -> Numeric:
        if self.kind == "count":
            return count_of(row, self.source)
        if self.value_field is None:
            raise ShapeError(f"Sum aggregate '{self.output}' needs a value field")
        return sum_of(row, self.source, self.value_field)


def apply_aggregates(rows: Sequence[dict], aggregates: Sequence[Aggregate]) -> list[dict]:
    out = []
    for row in rows:
        row = dict(row)
        for aggregate in aggregates:
            row[aggregate.output] = aggregate.compute(row)
        out.append(row)
    return out
