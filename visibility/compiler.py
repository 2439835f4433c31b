"""
Visibility query compiler.

Turns a resolved VisibilityPolicy plus an EntityQuerySpec into a QueryPlan
(pure, deterministic) and executes that plan against a store. Every entity
list in the application goes through fetch_with_visibility; none of them
re-implement the level dispatch.
"""

import asyncio
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from visibility.config import PUBLIC_STATUSES
from visibility.filters import (
    AnyOf,
    Equals,
    Filter,
    In,
    NullOrFalse,
    Overlaps,
    SortKey,
    find_sort_key,
    sorted_ids,
)
from visibility.merge import merge_and_dedupe
from visibility.models import (
    CollectionSchema,
    DeletedSemantics,
    EntityQuerySpec,
    QueryResult,
    VisibilityLevel,
    VisibilityPolicy,
)

Row = Dict[str, Any]


@dataclass(frozen=True)
class SubQuery:
    """One backing-store query of a plan."""
    label: str
    filters: Tuple[Filter, ...]
    offset: int = 0
    limit: Optional[int] = None


@dataclass(frozen=True)
class QueryPlan:
    collection: str
    fields: Tuple[str, ...]          # empty means every column
    level: VisibilityLevel           # the rule actually applied
    sort: Tuple[SortKey, ...]
    sub_queries: Tuple[SubQuery, ...]
    count: bool = False
    merged: bool = False
    window_start: int = 0
    window_size: Optional[int] = None
    id_column: str = "id"

    @property
    def empty(self) -> bool:
        """A plan with no sub-queries matches nothing and never hits the store."""
        return not self.sub_queries

    def filter_set(self) -> Tuple[Filter, ...]:
        """All filters across sub-queries, first occurrence order."""
        out: List[Filter] = []
        for sq in self.sub_queries:
            for f in sq.filters:
                if f not in out:
                    out.append(f)
        return tuple(out)


# ── Helpers ──────────────────────────────────────────────────────────

def parse_fields(fields: Union[str, Sequence[str], None]) -> Tuple[str, ...]:
    """"*" / "id, title" / ["id", "title"] -> tuple of column names."""
    if fields is None:
        return ()
    if isinstance(fields, str):
        parts = [p.strip() for p in fields.split(",")]
        if parts == ["*"]:
            return ()
        return tuple(p for p in parts if p)
    return tuple(fields)


def soft_delete_filters(schema: CollectionSchema) -> Tuple[Filter, ...]:
    if not schema.has_deleted_column:
        return ()
    if schema.deleted_semantics == DeletedSemantics.STRICT_FALSE:
        return (Equals(schema.deleted_column, False),)
    return (NullOrFalse(schema.deleted_column),)


def effective_sort(spec: EntityQuerySpec) -> Tuple[SortKey, ...]:
    """Declared sort, with the primary key appended as final tie-breaker."""
    sort = tuple(spec.sort) if spec.sort is not None else spec.schema.default_sort
    if find_sort_key(sort, spec.schema.id_column) is None:
        sort = sort + (SortKey(spec.schema.id_column),)
    return sort


def requested_window(spec: EntityQuerySpec) -> Tuple[int, Optional[int]]:
    """(offset, size) of the requested page; size None means unbounded."""
    if spec.row_range is not None:
        start, end = spec.row_range
        return start, end - start + 1
    if spec.limit is not None:
        return 0, spec.limit
    return 0, None


def _warn(message: str) -> None:
    print(f"[WARN] [visibility] {message}", file=sys.stderr)


# ── Planning ─────────────────────────────────────────────────────────

def plan_query(
    policy: VisibilityPolicy,
    spec: EntityQuerySpec,
    fields: Union[str, Sequence[str], None] = "*",
) -> QueryPlan:
    """Compile *policy* and *spec* into a deterministic QueryPlan."""
    schema = spec.schema
    offset, size = requested_window(spec)
    common = dict(
        collection=schema.name,
        fields=parse_fields(fields),
        sort=effective_sort(spec),
        count=spec.count,
        window_start=offset,
        window_size=size,
        id_column=schema.id_column,
    )

    base: Tuple[Filter, ...] = tuple(spec.filters)

    # Fast path: full visibility skips every other visibility filter.
    if policy.has_full_visibility:
        if not spec.include_deleted:
            base += soft_delete_filters(schema)
        return _single(VisibilityLevel.GLOBAL, base, offset, size, common)

    base += soft_delete_filters(schema)

    if policy.level == VisibilityLevel.SECTORAL:
        if schema.sector_column is None:
            _warn(f"'{schema.name}' has no sector column; applying public rule.")
            return _public(schema, base, offset, size, common)
        if not policy.sector_ids:
            return QueryPlan(level=VisibilityLevel.SECTORAL, sub_queries=(), **common)
        ids = sorted_ids(policy.sector_ids)
        if schema.sector_is_array:
            sector_filter: Filter = Overlaps(schema.sector_column, ids)
        else:
            sector_filter = In(schema.sector_column, ids)
        return _single(VisibilityLevel.SECTORAL, base + (sector_filter,), offset, size, common)

    if policy.level == VisibilityLevel.GEOGRAPHIC:
        if schema.jurisdiction_column is None:
            _warn(f"'{schema.name}' has no jurisdiction column; applying public rule.")
            return _public(schema, base, offset, size, common)
        return _geographic(policy, spec, base, offset, size, common)

    return _public(schema, base, offset, size, common)


def _single(level, filters, offset, size, common) -> QueryPlan:
    return QueryPlan(
        level=level,
        sub_queries=(SubQuery("base", tuple(filters), offset, size),),
        **common,
    )


def _public(schema, base, offset, size, common) -> QueryPlan:
    if schema.published_column is not None:
        rule: Filter = Equals(schema.published_column, True)
    elif schema.status_column is not None:
        rule = In(schema.status_column, PUBLIC_STATUSES)
    else:
        _warn(f"'{schema.name}' has neither publish flag nor status; nothing is public.")
        return QueryPlan(level=VisibilityLevel.PUBLIC, sub_queries=(), **common)
    return _single(VisibilityLevel.PUBLIC, base + (rule,), offset, size, common)


def _geographic(policy, spec, base, offset, size, common) -> QueryPlan:
    schema = spec.schema
    column = schema.jurisdiction_column
    home = policy.home_jurisdiction_id
    national = sorted_ids(j for j in policy.national_jurisdiction_ids if j != home)
    own_filter = Equals(column, home)

    split = spec.split_geographic and not schema.strict_pagination
    if not national:
        return _single(VisibilityLevel.GEOGRAPHIC, base + (own_filter,), offset, size, common)
    if not split:
        rule = AnyOf((own_filter, In(column, national)))
        return _single(VisibilityLevel.GEOGRAPHIC, base + (rule,), offset, size, common)

    # Each side fetches everything up to the end of the requested window; the
    # merge cuts the window afterwards. Deep pages are only as consistent as
    # the two independent reads.
    fetch_limit = None if size is None else offset + size
    return QueryPlan(
        level=VisibilityLevel.GEOGRAPHIC,
        sub_queries=(
            SubQuery("own", base + (own_filter,), 0, fetch_limit),
            SubQuery("national", base + (In(column, national),), 0, fetch_limit),
        ),
        merged=True,
        **common,
    )


# ── Execution ────────────────────────────────────────────────────────

def _project(rows: List[Row], fields: Tuple[str, ...]) -> List[Row]:
    if not fields:
        return rows
    return [{k: row.get(k) for k in fields} for row in rows]


async def execute_plan(store, plan: QueryPlan) -> Tuple[List[Row], Optional[int]]:
    """Run every sub-query of *plan* concurrently and combine the results."""
    if plan.empty:
        return [], (0 if plan.count else None)

    results = await asyncio.gather(*(store.fetch(plan, sq) for sq in plan.sub_queries))

    if not plan.merged:
        rows, count = results[0]
        return _project(rows, plan.fields), count

    rows = merge_and_dedupe(
        [r for r, _ in results],
        sort=plan.sort,
        id_column=plan.id_column,
        start=plan.window_start,
        size=plan.window_size,
    )
    count = sum(c or 0 for _, c in results) if plan.count else None
    return _project(rows, plan.fields), count


async def fetch_with_visibility(
    store,
    policy: VisibilityPolicy,
    spec: EntityQuerySpec,
    fields: Union[str, Sequence[str], None] = "*",
) -> Union[List[Row], QueryResult]:
    """
    Fetch rows of ``spec.schema.name`` visible under *policy*.

    Returns a plain row list, or QueryResult(data, count) when ``spec.count``
    is set. Store failures surface as QueryFailed.
    """
    plan = plan_query(policy, spec, fields)
    rows, count = await execute_plan(store, plan)
    if spec.count:
        return QueryResult(data=rows, count=count or 0)
    return rows
