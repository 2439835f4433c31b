"""
Database engine initialisation and schema checks for registered collections.
"""

import sys
from typing import Dict, List, Optional

from sqlalchemy import create_engine, inspect, text

from visibility.config import get_env
from visibility.models import CollectionSchema
from visibility.registry import COLLECTIONS


def init_engine(db_uri: Optional[str] = None):
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = db_uri or get_env("DB_URI")
    engine = create_engine(db_uri, echo=False, future=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def declared_columns(schema: CollectionSchema) -> List[str]:
    """Every column the descriptor promises to exist."""
    names = [
        schema.id_column,
        schema.jurisdiction_column,
        schema.sector_column,
        schema.published_column,
        schema.status_column,
        schema.deleted_column,
        schema.strategic_plan_column,
        schema.strategic_objective_column,
        schema.strategy_derived_column,
    ]
    names += [k.column for k in schema.default_sort]
    return sorted({n for n in names if n})


def check_collection_schemas(engine, collections: Optional[Dict[str, CollectionSchema]] = None) -> List[str]:
    """Compare the registry with the live database; returns a list of problems."""
    collections = COLLECTIONS if collections is None else collections
    insp = inspect(engine)
    tables = set(insp.get_table_names())
    problems = []
    for name in sorted(collections):
        if name not in tables:
            problems.append(f"{name}: table missing")
            continue
        present = {c["name"] for c in insp.get_columns(name)}
        for column in declared_columns(collections[name]):
            if column not in present:
                problems.append(f"{name}: column '{column}' missing")
    return problems
