"""
SQLAlchemy-backed store: reflects collection tables and renders compiled
query plans into SELECT / COUNT statements.
"""

import asyncio
import threading
from typing import Any, Dict, List, Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, array
from sqlalchemy.exc import SQLAlchemyError

from visibility.errors import QueryFailed
from visibility.filters import (
    AnyOf,
    Contains,
    Equals,
    Filter,
    In,
    NullOrFalse,
    Overlaps,
    Range,
)

Row = Dict[str, Any]


# ── Filter rendering ─────────────────────────────────────────────────

def _json_array_has_any(column, values):
    """EXISTS over json_each(column) for stores without native arrays."""
    elements = sa.func.json_each(column).table_valued("value")
    return (
        sa.select(sa.literal(1))
        .select_from(elements)
        .where(elements.c.value.in_(list(values)))
        .exists()
    )


def _render_equals(table, f: Equals):
    column = table.c[f.column]
    if f.value is None:
        return column.is_(None)
    return column == f.value


def _render_in(table, f: In):
    return table.c[f.column].in_(list(f.values))


def _render_range(table, f: Range):
    column = table.c[f.column]
    bounds = []
    if f.gte is not None:
        bounds.append(column >= f.gte)
    if f.gt is not None:
        bounds.append(column > f.gt)
    if f.lte is not None:
        bounds.append(column <= f.lte)
    if f.lt is not None:
        bounds.append(column < f.lt)
    return sa.and_(*bounds)


def _render_overlaps(table, f: Overlaps):
    column = table.c[f.column]
    if not f.values:
        return sa.false()
    if isinstance(column.type, ARRAY):
        return column.overlap(array(list(f.values)))
    return _json_array_has_any(column, f.values)


def _render_contains(table, f: Contains):
    column = table.c[f.column]
    if isinstance(column.type, ARRAY):
        return column.contains(array(list(f.values)))
    return sa.and_(sa.true(), *[_json_array_has_any(column, (v,)) for v in f.values])


def _render_null_or_false(table, f: NullOrFalse):
    column = table.c[f.column]
    return sa.or_(column.is_(None), column == sa.false())


def _render_any_of(table, f: AnyOf):
    return sa.or_(*[render_filter(table, sub) for sub in f.filters])


_RENDERERS = {
    Equals: _render_equals,
    In: _render_in,
    Range: _render_range,
    Overlaps: _render_overlaps,
    Contains: _render_contains,
    NullOrFalse: _render_null_or_false,
    AnyOf: _render_any_of,
}


def render_filter(table: sa.Table, f: Filter):
    """Render one tagged filter into a SQLAlchemy clause."""
    renderer = _RENDERERS.get(type(f))
    if renderer is None:
        raise TypeError(f"Unsupported filter type: {type(f).__name__}")
    return renderer(table, f)


# ── Statement building ───────────────────────────────────────────────

def build_select(table: sa.Table, plan, sub_query) -> sa.Select:
    """SELECT for one sub-query; id and sort columns are always selected."""
    if plan.fields:
        names: List[str] = []
        for name in list(plan.fields) + [plan.id_column] + [k.column for k in plan.sort]:
            if name not in names:
                names.append(name)
        stmt = sa.select(*[table.c[n] for n in names])
    else:
        stmt = sa.select(table)

    where = [render_filter(table, f) for f in sub_query.filters]
    if where:
        stmt = stmt.where(*where)

    for key in plan.sort:
        column = table.c[key.column]
        ordered = column.desc() if key.descending else column.asc()
        stmt = stmt.order_by(ordered.nulls_last())

    if sub_query.offset:
        stmt = stmt.offset(sub_query.offset)
    if sub_query.limit is not None:
        stmt = stmt.limit(sub_query.limit)
    return stmt


def build_count(table: sa.Table, sub_query) -> sa.Select:
    stmt = sa.select(sa.func.count()).select_from(table)
    where = [render_filter(table, f) for f in sub_query.filters]
    if where:
        stmt = stmt.where(*where)
    return stmt


# ── Store ────────────────────────────────────────────────────────────

class SqlStore:
    """Runs query plans against a SQLAlchemy engine."""

    def __init__(self, engine, schema: Optional[str] = None):
        self.engine = engine
        self.schema = schema
        self._metadata = sa.MetaData(schema=schema)
        self._tables: Dict[str, sa.Table] = {}
        self._lock = threading.Lock()

    def table(self, name: str) -> sa.Table:
        """Reflect (once) and return the table for *name*."""
        with self._lock:
            table = self._tables.get(name)
            if table is None:
                table = sa.Table(name, self._metadata, autoload_with=self.engine)
                self._tables[name] = table
            return table

    def run(self, plan, sub_query) -> Tuple[List[Row], Optional[int]]:
        """Execute one sub-query synchronously; returns (rows, count or None)."""
        try:
            table = self.table(plan.collection)
            stmt = build_select(table, plan, sub_query)
            with self.engine.connect() as conn:
                rows = [dict(r) for r in conn.execute(stmt).mappings()]
                count = None
                if plan.count:
                    count = conn.execute(build_count(table, sub_query)).scalar_one()
        except (SQLAlchemyError, KeyError) as e:
            raise QueryFailed(plan.collection, sub_query.filters, e) from e
        return rows, count

    async def fetch(self, plan, sub_query) -> Tuple[List[Row], Optional[int]]:
        return await asyncio.to_thread(self.run, plan, sub_query)
