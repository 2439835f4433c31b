"""
Capability descriptors for every collection served through the visibility
engine. Column names differ between collections; nothing downstream assumes
a column exists unless it is declared here.
"""

from typing import Dict, List

from visibility.filters import SortKey
from visibility.models import CollectionSchema, DeletedSemantics

_BY_START_DATE = (SortKey("start_date", descending=False),)

COLLECTIONS: Dict[str, CollectionSchema] = {
    s.name: s for s in [
        CollectionSchema(
            "challenges",
            strategic_plan_column="strategic_plan_ids",
            strategy_derived_column="is_strategy_derived",
        ),
        CollectionSchema(
            "pilots",
            sector_column=None,
            strategic_plan_column="strategic_plan_ids",
            strategic_objective_column="strategic_objective_ids",
        ),
        CollectionSchema(
            "programs",
            jurisdiction_column=None,
            strategic_plan_column="strategic_plan_ids",
            strategic_objective_column="strategic_objective_ids",
            strategy_derived_column="is_strategy_derived",
        ),
        CollectionSchema(
            "solutions",
            jurisdiction_column=None,
            sector_column="sectors",
            sector_is_array=True,
            status_column="verification_status",
        ),
        CollectionSchema(
            "living_labs",
            sector_column=None,
            published_column=None,
            deleted_column=None,
        ),
        CollectionSchema(
            "rd_projects",
            jurisdiction_column=None,
            deleted_semantics=DeletedSemantics.STRICT_FALSE,
        ),
        CollectionSchema(
            "rd_calls",
            jurisdiction_column=None,
            deleted_column=None,
            default_sort=_BY_START_DATE,
        ),
        CollectionSchema(
            "contracts",
            sector_column=None,
            published_column=None,
            deleted_semantics=DeletedSemantics.STRICT_FALSE,
            strict_pagination=True,
        ),
        CollectionSchema(
            "budgets",
            sector_column=None,
            published_column=None,
            status_column="approval_status",
            deleted_semantics=DeletedSemantics.STRICT_FALSE,
            default_sort=(SortKey("fiscal_year", descending=True),),
            strict_pagination=True,
        ),
        CollectionSchema(
            "events",
            sector_column=None,
            default_sort=_BY_START_DATE,
        ),
        CollectionSchema(
            "sandboxes",
            sector_column=None,
            published_column=None,
            deleted_column=None,
        ),
        CollectionSchema("case_studies", deleted_column=None),
        CollectionSchema(
            "partnerships",
            jurisdiction_column=None,
            sector_column=None,
            published_column=None,
        ),
        CollectionSchema(
            "innovation_proposals",
            jurisdiction_column=None,
            published_column=None,
        ),
        CollectionSchema(
            "policy_documents",
            jurisdiction_column=None,
            deleted_semantics=DeletedSemantics.STRICT_FALSE,
        ),
        CollectionSchema(
            "knowledge_documents",
            jurisdiction_column=None,
            status_column=None,
            deleted_column=None,
        ),
        CollectionSchema(
            "citizen_ideas",
            sector_column=None,
            deleted_column=None,
        ),
        CollectionSchema(
            "organizations",
            jurisdiction_column=None,
            published_column=None,
            status_column=None,
            deleted_column=None,
        ),
        CollectionSchema(
            "matchmaker_applications",
            jurisdiction_column=None,
            sector_column=None,
            published_column=None,
        ),
        CollectionSchema(
            "scaling_plans",
            jurisdiction_column=None,
            sector_column=None,
            published_column=None,
        ),
        CollectionSchema(
            "strategic_plans",
            sector_column=None,
            published_column=None,
            deleted_column=None,
        ),
        CollectionSchema(
            "news_articles",
            jurisdiction_column=None,
            sector_column=None,
            status_column=None,
            deleted_column=None,
            default_sort=(SortKey("publish_date", descending=True),),
        ),
    ]
}


def get_collection(name: str) -> CollectionSchema:
    """Return the descriptor for *name* or raise ValueError."""
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise ValueError(f"Unknown collection '{name}'.") from None


def collection_names() -> List[str]:
    return sorted(COLLECTIONS)
