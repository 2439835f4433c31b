"""
Strategic-plan alignment filters layered on top of visibility scoping.

The alignment filters are added to the caller filters; visibility is still
decided by the shared planner, and geographic results still go through the
shared merge routine.
"""

from dataclasses import dataclass, replace
from typing import Any, List, Sequence, Tuple, Union

from visibility.compiler import fetch_with_visibility
from visibility.filters import Equals, Filter, Overlaps, sorted_ids
from visibility.models import EntityQuerySpec, VisibilityPolicy


@dataclass(frozen=True)
class StrategicFilter:
    plan_ids: Tuple[Any, ...] = ()
    objective_ids: Tuple[Any, ...] = ()
    derived_only: bool = False

    def __post_init__(self):
        object.__setattr__(self, "plan_ids", sorted_ids(self.plan_ids))
        object.__setattr__(self, "objective_ids", sorted_ids(self.objective_ids))

    @property
    def is_empty(self) -> bool:
        return not (self.plan_ids or self.objective_ids or self.derived_only)


def strategic_filters(spec: EntityQuerySpec, strategic: StrategicFilter) -> Tuple[Filter, ...]:
    """Alignment filters for ``spec.schema``; ValueError if a column is missing."""
    schema = spec.schema
    out: List[Filter] = []
    if strategic.plan_ids:
        if schema.strategic_plan_column is None:
            raise ValueError(f"'{schema.name}' has no strategic plan column.")
        out.append(Overlaps(schema.strategic_plan_column, strategic.plan_ids))
    if strategic.objective_ids:
        if schema.strategic_objective_column is None:
            raise ValueError(f"'{schema.name}' has no strategic objective column.")
        out.append(Overlaps(schema.strategic_objective_column, strategic.objective_ids))
    if strategic.derived_only:
        if schema.strategy_derived_column is None:
            raise ValueError(f"'{schema.name}' does not track strategy-derived rows.")
        out.append(Equals(schema.strategy_derived_column, True))
    return tuple(out)


def with_strategic(spec: EntityQuerySpec, strategic: StrategicFilter) -> EntityQuerySpec:
    """Return *spec* with alignment filters appended and the geographic split forced."""
    return replace(
        spec,
        filters=tuple(spec.filters) + strategic_filters(spec, strategic),
        split_geographic=True,
    )


async def fetch_with_strategic_visibility(
    store,
    policy: VisibilityPolicy,
    spec: EntityQuerySpec,
    strategic: StrategicFilter,
    fields: Union[str, Sequence[str], None] = "*",
):
    """Visibility-scoped fetch narrowed to rows aligned with *strategic*."""
    return await fetch_with_visibility(store, policy, with_strategic(spec, strategic), fields)
