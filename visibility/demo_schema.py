"""
Table definitions matching the collection registry, for demo databases and tests.

Production databases are managed elsewhere; these definitions only mirror the
columns the engine reads.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
)

from visibility.database import declared_columns
from visibility.registry import COLLECTIONS

_COLUMN_TYPES = {
    "created_at": DateTime,
    "start_date": DateTime,
    "end_date": DateTime,
    "publish_date": DateTime,
    "fiscal_year": Integer,
    "is_published": Boolean,
    "is_deleted": Boolean,
    "is_strategy_derived": Boolean,
    "sectors": JSON,
    "strategic_plan_ids": JSON,
    "strategic_objective_ids": JSON,
}

# Columns used by entity list filters beyond the visibility descriptor.
EXTRA_COLUMNS = {
    "pilots": ["stage"],
    "programs": ["program_type", "status"],
    "solutions": ["maturity_level"],
    "events": ["event_type", "end_date", "status"],
    "contracts": ["start_date", "end_date"],
    "rd_calls": ["end_date"],
    "budgets": ["created_at"],
}


def _column(name: str) -> Column:
    return Column(name, _COLUMN_TYPES.get(name, String(64)))


def define_tables(metadata: MetaData) -> MetaData:
    """Add reference, identity and collection tables to *metadata*."""
    Table(
        "regions", metadata,
        Column("id", String(64), primary_key=True),
        Column("code", String(32), unique=True),
        Column("name_en", String(128)),
    )
    Table(
        "municipalities", metadata,
        Column("id", String(64), primary_key=True),
        Column("region_id", String(64)),
        Column("name_en", String(128)),
        Column("is_deleted", Boolean),
    )
    Table(
        "portal_users", metadata,
        Column("id", String(64), primary_key=True),
        Column("display_name", String(128)),
        Column("api_key", String(128), unique=True),
        Column("is_active", Boolean),
    )
    Table(
        "user_roles", metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("user_id", String(64)),
        Column("role", String(64)),
    )
    Table(
        "user_permissions", metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("user_id", String(64)),
        Column("permission", String(64)),
    )
    Table(
        "user_visibility_scopes", metadata,
        Column("user_id", String(64), primary_key=True),
        Column("is_national", Boolean),
        Column("sector_ids", JSON),
        Column("home_municipality_id", String(64)),
    )

    for name, schema in sorted(COLLECTIONS.items()):
        names = ["title", "created_at"] + declared_columns(schema) + EXTRA_COLUMNS.get(name, [])
        columns = [Column(schema.id_column, String(64), primary_key=True)]
        seen = {schema.id_column}
        for col in names:
            if col not in seen:
                seen.add(col)
                columns.append(_column(col))
        Table(name, metadata, *columns)
    return metadata


def create_demo_schema(engine) -> MetaData:
    metadata = define_tables(MetaData())
    metadata.create_all(engine)
    return metadata
