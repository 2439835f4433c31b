"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from visibility.config import (
    ADMIN_ROLE,
    NATIONAL_REVIEWER_ROLES,
)
from visibility.filters import Filter, SortKey, sorted_ids


@dataclass(frozen=True)
class CallerContext:
    """The authenticated caller's identity, roles and permissions."""
    user_id: Any
    display_name: str = ""
    roles: FrozenSet[str] = frozenset()
    permissions: FrozenSet[str] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "roles", frozenset(self.roles))
        object.__setattr__(self, "permissions", frozenset(self.permissions))

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles

    @property
    def is_national_reviewer(self) -> bool:
        return bool(self.roles & NATIONAL_REVIEWER_ROLES)

    def has_permission(self, name: str) -> bool:
        return name in self.permissions


@dataclass(frozen=True)
class VisibilityScope:
    """Server-side scope of a caller."""
    is_national: bool = False
    sector_ids: FrozenSet[Any] = frozenset()
    home_jurisdiction_id: Any = None  # municipality id

    def __post_init__(self):
        object.__setattr__(self, "sector_ids", frozenset(self.sector_ids or ()))


class VisibilityLevel(str, Enum):
    GLOBAL = "global"
    SECTORAL = "sectoral"
    GEOGRAPHIC = "geographic"
    PUBLIC = "public"


@dataclass(frozen=True)
class VisibilityPolicy:
    """Resolved visibility for one caller; derived, never stored."""
    level: VisibilityLevel
    has_full_visibility: bool
    is_national: bool
    sector_ids: FrozenSet[Any]
    home_jurisdiction_id: Any
    national_jurisdiction_ids: FrozenSet[Any]

    def cache_params(self) -> Tuple:
        """Only the parameters that influence the compiled query."""
        if self.level == VisibilityLevel.GLOBAL:
            return (self.level.value,)
        if self.level == VisibilityLevel.SECTORAL:
            return (self.level.value, sorted_ids(self.sector_ids))
        if self.level == VisibilityLevel.GEOGRAPHIC:
            return (
                self.level.value,
                self.home_jurisdiction_id,
                sorted_ids(self.national_jurisdiction_ids),
            )
        return (self.level.value,)


class DeletedSemantics(str, Enum):
    STRICT_FALSE = "strict_false"    # live rows have is_deleted = false
    NULL_OR_FALSE = "null_or_false"  # live rows have is_deleted null or false


@dataclass(frozen=True)
class CollectionSchema:
    """Per-collection capability descriptor; None means the column is absent."""
    name: str
    id_column: str = "id"
    jurisdiction_column: Optional[str] = "municipality_id"
    sector_column: Optional[str] = "sector_id"
    sector_is_array: bool = False
    published_column: Optional[str] = "is_published"
    status_column: Optional[str] = "status"
    deleted_column: Optional[str] = "is_deleted"
    deleted_semantics: DeletedSemantics = DeletedSemantics.NULL_OR_FALSE
    default_sort: Tuple[SortKey, ...] = (SortKey("created_at", descending=True),)
    strategic_plan_column: Optional[str] = None
    strategic_objective_column: Optional[str] = None
    strategy_derived_column: Optional[str] = None
    strict_pagination: bool = False  # never merge client-side

    @property
    def has_deleted_column(self) -> bool:
        return self.deleted_column is not None


@dataclass(frozen=True)
class EntityQuerySpec:
    """Per-call query configuration handed to the compiler."""
    schema: CollectionSchema
    filters: Tuple[Filter, ...] = ()
    sort: Optional[Tuple[SortKey, ...]] = None
    limit: Optional[int] = None
    row_range: Optional[Tuple[int, int]] = None  # inclusive (start, end)
    count: bool = False
    include_deleted: bool = False
    split_geographic: bool = False

    def __post_init__(self):
        object.__setattr__(self, "filters", tuple(self.filters))
        if self.sort is not None:
            object.__setattr__(self, "sort", tuple(self.sort))
        if self.limit is not None and self.row_range is not None:
            raise ValueError("Use either limit or row_range, not both.")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative.")
        if self.row_range is not None:
            start, end = self.row_range
            if start < 0 or end < start:
                raise ValueError(f"Invalid row_range {self.row_range!r}.")
            object.__setattr__(self, "row_range", (int(start), int(end)))

    @property
    def collection(self) -> str:
        return self.schema.name


@dataclass
class QueryResult:
    data: List[Dict[str, Any]]
    count: int


@dataclass
class EntityPage:
    data: List[Dict[str, Any]]
    count: Optional[int]
    page: int
    page_size: int
    total_pages: Optional[int]
    level: str = ""
