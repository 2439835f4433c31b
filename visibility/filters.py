"""
Tagged filter variants and sort keys.

Filters are plain frozen dataclasses; the store renders them by type, never
by inspecting the shape of the value.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple, Union


def _as_tuple(values: Iterable[Any]) -> Tuple[Any, ...]:
    if isinstance(values, (str, bytes)):
        return (values,)
    return tuple(values)


def sorted_ids(values: Iterable[Any]) -> Tuple[Any, ...]:
    """Deterministic tuple of ids (mixed id types sort by their string form)."""
    return tuple(sorted(set(values), key=str))


# ── Caller-facing variants ───────────────────────────────────────────

@dataclass(frozen=True)
class Equals:
    column: str
    value: Any


@dataclass(frozen=True)
class In:
    """Column value is one of *values*."""
    column: str
    values: Tuple[Any, ...]

    def __post_init__(self):
        object.__setattr__(self, "values", _as_tuple(self.values))


@dataclass(frozen=True)
class Range:
    """Inclusive/exclusive bounds on a column; unset bounds are ignored."""
    column: str
    gte: Any = None
    gt: Any = None
    lte: Any = None
    lt: Any = None

    def __post_init__(self):
        if all(b is None for b in (self.gte, self.gt, self.lte, self.lt)):
            raise ValueError(f"Range filter on '{self.column}' needs at least one bound.")


@dataclass(frozen=True)
class Overlaps:
    """Array column shares at least one element with *values*."""
    column: str
    values: Tuple[Any, ...]

    def __post_init__(self):
        object.__setattr__(self, "values", _as_tuple(self.values))


@dataclass(frozen=True)
class Contains:
    """Array column holds every element of *values*."""
    column: str
    values: Tuple[Any, ...]

    def __post_init__(self):
        object.__setattr__(self, "values", _as_tuple(self.values))


# ── Internal variants ────────────────────────────────────────────────

@dataclass(frozen=True)
class NullOrFalse:
    column: str


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of filters."""
    filters: Tuple["Filter", ...]

    def __post_init__(self):
        object.__setattr__(self, "filters", tuple(self.filters))


Filter = Union[Equals, In, Range, Overlaps, Contains, NullOrFalse, AnyOf]


def filter_columns(f: Filter) -> Tuple[str, ...]:
    """Every column a filter touches (recursing into AnyOf)."""
    if isinstance(f, AnyOf):
        cols: Tuple[str, ...] = ()
        for sub in f.filters:
            cols += filter_columns(sub)
        return cols
    return (f.column,)


# ── Sorting ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SortKey:
    column: str
    descending: bool = False

    @classmethod
    def parse(cls, text: str) -> "SortKey":
        """Parse "created_at" / "-created_at" / "created_at.desc"."""
        text = text.strip()
        if text.startswith("-"):
            return cls(text[1:], True)
        if "." in text:
            column, direction = text.rsplit(".", 1)
            return cls(column, direction.lower() == "desc")
        return cls(text, False)


def find_sort_key(sort: Iterable[SortKey], column: str) -> Optional[SortKey]:
    for key in sort:
        if key.column == column:
            return key
    return None
