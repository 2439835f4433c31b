"""
Entity list queries.

Each collection-specific builder only supplies configuration (filters, sort,
pagination); visibility is always applied by the compiler.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from visibility.compiler import fetch_with_visibility
from visibility.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from visibility.filters import Equals, Filter, Overlaps, Range, SortKey
from visibility.models import (
    CollectionSchema,
    EntityPage,
    EntityQuerySpec,
    VisibilityPolicy,
)
from visibility.registry import get_collection
from visibility.strategic import StrategicFilter, with_strategic


@dataclass(frozen=True)
class EntityListQuery:
    collection: str
    filters: Tuple[Filter, ...] = ()
    sort: Optional[Tuple[SortKey, ...]] = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    with_count: bool = True
    strategic: Optional[StrategicFilter] = None
    split_geographic: bool = False

    def __post_init__(self):
        get_collection(self.collection)
        object.__setattr__(self, "filters", tuple(self.filters))
        if self.sort is not None:
            object.__setattr__(self, "sort", tuple(self.sort))
        if self.page < 1:
            raise ValueError("page must be >= 1.")
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}.")

    @property
    def schema(self) -> CollectionSchema:
        return get_collection(self.collection)

    @property
    def row_range(self) -> Tuple[int, int]:
        start = (self.page - 1) * self.page_size
        return start, start + self.page_size - 1

    def to_spec(self) -> EntityQuerySpec:
        spec = EntityQuerySpec(
            schema=self.schema,
            filters=self.filters,
            sort=self.sort,
            row_range=self.row_range,
            count=self.with_count,
            split_geographic=self.split_geographic,
        )
        if self.strategic is not None and not self.strategic.is_empty:
            spec = with_strategic(spec, self.strategic)
        return spec

    def cache_key(self, policy: VisibilityPolicy) -> Tuple:
        return (
            self.collection,
            policy.cache_params(),
            self.filters,
            self.sort,
            self.page,
            self.page_size,
            self.with_count,
            self.strategic,
            self.split_geographic,
        )

    @staticmethod
    def enabled(resolver) -> bool:
        """Only run once the caller's scope has finished loading."""
        return not resolver.is_loading


def total_pages(count: int, page_size: int) -> int:
    return math.ceil(count / page_size) if count else 0


async def fetch_entities(store, policy: VisibilityPolicy, query: EntityListQuery, cache=None) -> EntityPage:
    """Fetch one page of *query* under *policy*, through *cache* when given."""
    key = query.cache_key(policy)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    result = await fetch_with_visibility(store, policy, query.to_spec())
    if query.with_count:
        data, count = result.data, result.count
        pages: Optional[int] = total_pages(count, query.page_size)
    else:
        data, count, pages = result, None, None

    page = EntityPage(
        data=data,
        count=count,
        page=query.page,
        page_size=query.page_size,
        total_pages=pages,
        level=policy.level.value,
    )
    if cache is not None:
        cache.set(key, page)
    return page


# ── Builders ─────────────────────────────────────────────────────────

def equality_filters(values: Dict[str, Any]) -> Tuple[Filter, ...]:
    """Equals filters for every non-None value, in column order."""
    return tuple(Equals(column, values[column]) for column in sorted(values) if values[column] is not None)


def list_query(collection: str, equals: Optional[Dict[str, Any]] = None, **kwargs) -> EntityListQuery:
    extra = tuple(kwargs.pop("filters", ()))
    return EntityListQuery(collection, filters=equality_filters(equals or {}) + extra, **kwargs)


def challenges_query(status=None, sector_id=None, municipality_id=None, **kwargs) -> EntityListQuery:
    return list_query(
        "challenges",
        {"status": status, "sector_id": sector_id, "municipality_id": municipality_id},
        **kwargs,
    )


def pilots_query(stage=None, municipality_id=None, **kwargs) -> EntityListQuery:
    return list_query("pilots", {"stage": stage, "municipality_id": municipality_id}, **kwargs)


def programs_query(program_type=None, status=None, **kwargs) -> EntityListQuery:
    return list_query("programs", {"program_type": program_type, "status": status}, **kwargs)


def solutions_query(sector_ids: Iterable[Any] = (), maturity_level=None, **kwargs) -> EntityListQuery:
    filters = (Overlaps("sectors", tuple(sector_ids)),) if sector_ids else ()
    return list_query("solutions", {"maturity_level": maturity_level}, filters=filters, **kwargs)


def living_labs_query(status=None, municipality_id=None, **kwargs) -> EntityListQuery:
    return list_query("living_labs", {"status": status, "municipality_id": municipality_id}, **kwargs)


def rd_projects_query(status=None, sector_id=None, **kwargs) -> EntityListQuery:
    return list_query("rd_projects", {"status": status, "sector_id": sector_id}, **kwargs)


def rd_calls_query(open_on: Optional[date] = None, status=None, **kwargs) -> EntityListQuery:
    filters: Tuple[Filter, ...] = ()
    if open_on is not None:
        filters = (Range("start_date", lte=open_on), Range("end_date", gte=open_on))
    return list_query("rd_calls", {"status": status}, filters=filters, **kwargs)


def contracts_query(status=None, active_on: Optional[date] = None, **kwargs) -> EntityListQuery:
    filters: Tuple[Filter, ...] = ()
    if active_on is not None:
        filters = (Range("start_date", lte=active_on), Range("end_date", gte=active_on))
    return list_query("contracts", {"status": status}, filters=filters, **kwargs)


def budgets_query(fiscal_year: Optional[int] = None, approval_status=None, **kwargs) -> EntityListQuery:
    return list_query(
        "budgets",
        {"fiscal_year": fiscal_year, "approval_status": approval_status},
        **kwargs,
    )


def events_query(upcoming: bool = False, now: Optional[datetime] = None,
                 event_type=None, status=None, **kwargs) -> EntityListQuery:
    filters: Tuple[Filter, ...] = ()
    if upcoming:
        filters = (Range("start_date", gte=now or datetime.utcnow()),)
    return list_query("events", {"event_type": event_type, "status": status}, filters=filters, **kwargs)


def strategic_plans_query(status=None, municipality_id=None, **kwargs) -> EntityListQuery:
    return list_query("strategic_plans", {"status": status, "municipality_id": municipality_id}, **kwargs)
